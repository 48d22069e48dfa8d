"""In-memory stand-in for the parts of the opensearch-py client the store uses"""

import copy
import functools
import itertools
import re
from collections import OrderedDict

from opensearchpy.exceptions import NotFoundError

from graphmem.services.knowledge_graph import READ_ACCOUNTING_SCRIPT

TOKEN_RE = re.compile(r'\w+')


def _tokens(text):
    return TOKEN_RE.findall(str(text).lower())


def _field_value(source, field):
    if field.endswith('.keyword'):
        field = field[:-len('.keyword')]
    return source.get(field)


def _as_list(value):
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


class FakeIndices:

    def __init__(self, client):
        self.client = client

    def exists(self, index, **kwargs):
        self.client.calls.append(('indices.exists', index))
        return index in self.client.store

    def create(self, index, body=None, **kwargs):
        self.client.calls.append(('indices.create', index))
        self.client.store.setdefault(index, OrderedDict())
        self.client.index_bodies[index] = body
        return {'acknowledged': True, 'index': index}

    def delete(self, index, **kwargs):
        self.client.calls.append(('indices.delete', index))
        if index not in self.client.store:
            raise NotFoundError(404, 'index_not_found_exception', {'index': index})
        del self.client.store[index]
        return {'acknowledged': True}


class FakeOpenSearch:
    """Keeps documents per index and evaluates the query subset the store emits."""

    def __init__(self):
        self.store = {}
        self.index_bodies = {}
        self.calls = []
        self.indices = FakeIndices(self)
        self._scrolls = {}
        self._scroll_ids = itertools.count(1)

    def _docs(self, index):
        return self.store.setdefault(index, OrderedDict())

    def request_count(self, method):
        return sum(1 for call in self.calls if call[0] == method)

    def ping(self, **kwargs):
        self.calls.append(('ping', None))
        return True

    def index(self, index, body, id=None, **kwargs):
        self.calls.append(('index', id))
        docs = self._docs(index)
        result = 'updated' if id in docs else 'created'
        docs[id] = copy.deepcopy(body)
        return {'_index': index, '_id': id, 'result': result}

    def update(self, index, id, body, _source=None, **kwargs):
        self.calls.append(('update', id))
        docs = self._docs(index)
        if id not in docs:
            if 'upsert' not in body:
                raise NotFoundError(404, 'document_missing_exception', {'_id': id})
            docs[id] = copy.deepcopy(body['upsert'])
            result = 'created'
        else:
            if 'doc' in body:
                docs[id].update(copy.deepcopy(body['doc']))
            if 'script' in body:
                self._run_script(docs[id], body['script'])
            result = 'updated'

        response = {'_index': index, '_id': id, 'result': result}
        if _source:
            response['get'] = {'found': True, '_source': copy.deepcopy(docs[id])}
        return response

    def _run_script(self, source, script):
        if script['source'] != READ_ACCOUNTING_SCRIPT:
            raise NotImplementedError(script['source'])
        source['readCount'] = (source.get('readCount') or 0) + 1
        source['lastRead'] = script['params']['now']

    def mget(self, index, body, **kwargs):
        self.calls.append(('mget', tuple(body['ids'])))
        docs = self._docs(index)
        result = []
        for doc_id in body['ids']:
            if doc_id in docs:
                result.append({'_id': doc_id, 'found': True, '_source': copy.deepcopy(docs[doc_id])})
            else:
                result.append({'_id': doc_id, 'found': False})
        return {'docs': result}

    def delete(self, index, id, **kwargs):
        self.calls.append(('delete', id))
        docs = self._docs(index)
        if id not in docs:
            raise NotFoundError(404, 'not_found', {'_id': id, 'result': 'not_found'})
        del docs[id]
        return {'_index': index, '_id': id, 'result': 'deleted'}

    # Search

    def search(self, body=None, index=None, scroll=None, size=None, **kwargs):
        self.calls.append(('search', index))
        body = body or {}
        query = body.get('query', {'match_all': {}})

        scored = []
        for doc_id, source in self._docs(index).items():
            matched, score = self._evaluate(query, source)
            if matched:
                scored.append((doc_id, source, score))
        scored = self._sort(scored, body.get('sort'))

        query_tokens = self._query_tokens(query)
        hits = []
        for doc_id, source, score in scored:
            hit = {'_index': index, '_id': doc_id, '_score': score, '_source': copy.deepcopy(source)}
            if 'highlight' in body:
                highlight = self._highlight(source, body['highlight'], query_tokens)
                if highlight:
                    hit['highlight'] = highlight
            hits.append(hit)

        total = len(hits)
        page_size = body.get('size', size if size is not None else 10)
        response = {
            '_shards': {
                'total': 1,
                'successful': 1,
                'skipped': 0,
                'failed': 0
            },
            'hits': {
                'total': {
                    'value': total,
                    'relation': 'eq'
                },
                'hits': hits[:page_size]
            }
        }
        if scroll:
            scroll_id = f'scroll-{next(self._scroll_ids)}'
            self._scrolls[scroll_id] = (hits[page_size:], page_size)
            response['_scroll_id'] = scroll_id
        return response

    def scroll(self, body=None, scroll_id=None, **kwargs):
        self.calls.append(('scroll', None))
        scroll_id = scroll_id or body['scroll_id']
        remaining, page_size = self._scrolls.get(scroll_id, ([], 0))
        self._scrolls[scroll_id] = (remaining[page_size:], page_size)
        return {
            '_scroll_id': scroll_id,
            '_shards': {
                'total': 1,
                'successful': 1,
                'skipped': 0,
                'failed': 0
            },
            'hits': {
                'total': {
                    'value': len(remaining),
                    'relation': 'eq'
                },
                'hits': remaining[:page_size]
            }
        }

    def clear_scroll(self, body=None, scroll_id=None, **kwargs):
        ids = scroll_id or (body or {}).get('scroll_id', [])
        for sid in _as_list(ids):
            self._scrolls.pop(sid, None)
        return {'succeeded': True}

    def _evaluate(self, query, source):
        """Return (matched, score) for the query subset used by the store."""
        if 'match_all' in query:
            return True, 1.0

        if 'term' in query:
            field, options = next(iter(query['term'].items()))
            value, boost = (options['value'], options.get('boost', 1.0)) if isinstance(options, dict) else (options, 1.0)
            matched = value in _as_list(_field_value(source, field))
            return matched, boost if matched else 0.0

        if 'terms' in query:
            field, values = next(iter(query['terms'].items()))
            matched = any(v in values for v in _as_list(_field_value(source, field)))
            return matched, 1.0 if matched else 0.0

        if 'simple_query_string' in query:
            options = query['simple_query_string']
            wanted = set(_tokens(options['query']))
            score = 0.0
            for field in options['fields']:
                name, _, boost = field.partition('^')
                text = ' '.join(str(v) for v in _as_list(source.get(name)))
                score += float(boost or 1.0) * sum(1 for token in _tokens(text) if token in wanted)
            return score > 0, score

        if 'bool' in query:
            clauses = query['bool']
            score = 0.0
            for clause in clauses.get('filter', []):
                if not self._evaluate(clause, source)[0]:
                    return False, 0.0
            for clause in clauses.get('must', []):
                matched, clause_score = self._evaluate(clause, source)
                if not matched:
                    return False, 0.0
                score += clause_score
            should = [self._evaluate(clause, source) for clause in clauses.get('should', [])]
            default_minimum = 0 if (clauses.get('must') or clauses.get('filter')) else 1
            minimum = clauses.get('minimum_should_match', default_minimum if should else 0)
            if sum(1 for matched, _ in should if matched) < minimum:
                return False, 0.0
            score += sum(s for matched, s in should if matched)
            return True, score

        raise NotImplementedError(query)

    def _sort(self, scored, sort):
        if sort is None:
            sort = [{'_score': {'order': 'desc'}}]
        keys = []
        for entry in _as_list(sort):
            if entry == '_doc':
                continue
            if isinstance(entry, str):
                keys.append((entry, 'desc' if entry == '_score' else 'asc'))
                continue
            field, options = next(iter(entry.items()))
            order = options.get('order', 'asc') if isinstance(options, dict) else options
            keys.append((field, order))

        def value_of(item, field):
            doc_id, source, score = item
            return score if field == '_score' else _field_value(source, field)

        def compare(a, b):
            for field, order in keys:
                va, vb = value_of(a, field), value_of(b, field)
                if va == vb:
                    continue
                # Missing values sort last in either direction
                if va is None:
                    return 1
                if vb is None:
                    return -1
                result = -1 if va < vb else 1
                return result if order == 'asc' else -result
            return 0

        return sorted(scored, key=functools.cmp_to_key(compare))

    def _query_tokens(self, query):
        if 'simple_query_string' in query:
            return set(_tokens(query['simple_query_string']['query']))
        tokens = set()
        for clauses in query.get('bool', {}).values():
            if isinstance(clauses, list):
                for clause in clauses:
                    tokens |= self._query_tokens(clause)
        return tokens

    def _highlight(self, source, options, query_tokens):
        pre, post = options.get('pre_tags', ['<em>'])[0], options.get('post_tags', ['</em>'])[0]
        highlight = {}
        for field in options.get('fields', {}):
            fragments = []
            for value in _as_list(source.get(field)):
                if query_tokens & set(_tokens(value)):
                    fragments.append(TOKEN_RE.sub(
                        lambda m: f'{pre}{m.group(0)}{post}' if m.group(0).lower() in query_tokens else m.group(0),
                        str(value)))
            if fragments:
                highlight[field] = fragments
        return highlight
