import threading
import time
import unittest
from unittest.mock import MagicMock

from habpredict.cache import PredictionCache, cache_key

from tests.factories import make_request

class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

class TestPredictionCache(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.cache = PredictionCache(ttl=300, max_size=2, clock=self.clock)

    def test_get_returns_copy(self):
        self.cache.put('a', {'points': [1, 2]})
        hit = self.cache.get('a')
        hit['points'].append(3)
        self.assertEqual(self.cache.get('a'), {'points': [1, 2]})

    def test_entries_expire_after_ttl(self):
        self.cache.put('a', 'result')
        self.clock.now += 299
        self.assertEqual(self.cache.get('a'), 'result')
        self.clock.now += 1
        self.assertIsNone(self.cache.get('a'))
        self.assertEqual(len(self.cache), 0)

    def test_full_cache_evicts_oldest(self):
        self.cache.put('a', 1)
        self.clock.now += 1
        self.cache.put('b', 2)
        self.clock.now += 1
        self.cache.put('c', 3)
        self.assertNotIn('a', self.cache)
        self.assertIn('b', self.cache)
        self.assertIn('c', self.cache)

    def test_invalidate(self):
        self.cache.put('a', 1)
        self.cache.put('b', 2)
        self.cache.invalidate('a')
        self.assertEqual(len(self.cache), 1)
        self.cache.invalidate()
        self.assertEqual(len(self.cache), 0)

    def test_compute_once_caches_success(self):
        compute = MagicMock(return_value=('result', True))
        self.assertEqual(self.cache.compute_once('k', compute), ('result', False))
        self.assertEqual(self.cache.compute_once('k', compute), ('result', True))
        compute.assert_called_once()

    def test_non_cacheable_results_are_recomputed(self):
        compute = MagicMock(return_value=('fallback', False))
        self.cache.compute_once('k', compute)
        self.cache.compute_once('k', compute)
        self.assertEqual(compute.call_count, 2)
        self.assertEqual(len(self.cache), 0)

    def test_errors_propagate_and_release_slot(self):
        compute = MagicMock(side_effect=RuntimeError('boom'))
        with self.assertRaises(RuntimeError):
            self.cache.compute_once('k', compute)
        self.assertEqual(self.cache._key_locks, {})
        self.assertEqual(len(self.cache), 0)

    def test_concurrent_callers_share_one_computation(self):
        cache = PredictionCache(ttl=300, max_size=10)
        calls = []

        def compute():
            calls.append(1)
            time.sleep(0.2)
            return 'shared', True

        results = []
        threads = [threading.Thread(target=lambda: results.append(cache.compute_once('k', compute)))
                   for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(len(calls), 1)
        self.assertEqual(sorted(hit for _, hit in results), [False, True, True, True])
        self.assertTrue(all(value == 'shared' for value, _ in results))

    def test_stats(self):
        self.cache.put('a', 1)
        self.cache.get('a')
        self.cache.get('missing')
        stats = self.cache.stats()
        self.assertEqual(stats['size'], 1)
        self.assertEqual(stats['hits'], 1)
        self.assertEqual(stats['misses'], 1)

class TestCacheKey(unittest.TestCase):
    def test_same_request_same_key(self):
        self.assertEqual(cache_key(make_request()), cache_key(make_request()))

    def test_rounding_absorbs_float_noise(self):
        self.assertEqual(cache_key(make_request(latitude=40.71280001)), cache_key(make_request(latitude=40.7128)))

    def test_different_request_different_key(self):
        self.assertNotEqual(cache_key(make_request()), cache_key(make_request(latitude=41.0)))
        self.assertNotEqual(cache_key(make_request()), cache_key(make_request(precision='fast')))

if __name__ == '__main__':
    unittest.main()
