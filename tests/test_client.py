import unittest
import sys
import os
from unittest import mock

import requests
from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from client import MuscleGrowClient
from rest_api import MuscleGrowAPI


class ClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = 'test_client.db'
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.api = MuscleGrowAPI(db_path=self.db_path)
        self.test_client = TestClient(self.api.app)
        self.client = MuscleGrowClient(base_url='http://testserver/')
        patcher = mock.patch('client.requests.request', side_effect=self._forward)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def _forward(self, method, url, headers=None, **kwargs):
        resp = self.test_client.request(method, url, headers=headers, **kwargs)
        wrapped = requests.Response()
        wrapped.status_code = resp.status_code
        wrapped._content = resp.content
        wrapped.headers.update(resp.headers)
        wrapped.encoding = 'utf-8'
        wrapped.url = url
        return wrapped

    def test_record_workout(self) -> None:
        token = self.client.sign_up('Alice', 'alice@example.com', 'password123')
        self.assertEqual(self.client.token, token)
        self.assertEqual(self.client.get_profile()['bmi'], None)
        self.assertEqual(self.client.update_profile(height=180, weight=81)['bmi'], 25.0)

        exercises = self.client.list_exercises()
        self.assertEqual(exercises[0]['id'], 'bench-press')
        sid = self.client.save_session('2024-01-01', note='first')
        self.assertEqual(self.client.save_sets(sid, 'bench-press', [{'weight': 70, 'reps': 8}]), 1)
        self.assertEqual(self.client.list_sets(sid, 'bench-press')[0]['reps'], 8)
        progress = self.client.big3_progress('all')
        self.assertEqual(progress['bench_press'][0]['max_weight'], 70.0)
        self.assertIn('ベンチプレス', self.client.export_csv())

    def test_errors_raise(self) -> None:
        with self.assertRaises(requests.HTTPError):
            self.client.get_profile()
        self.client.sign_up('Alice', 'alice@example.com', 'password123')
        self.client.sign_out()
        self.assertIsNone(self.client.token)
        with self.assertRaises(requests.HTTPError):
            self.client.sign_in('alice@example.com', 'wrong-password')
        self.client.sign_in('alice@example.com', 'password123')
        result = self.client.migrate_guest({})
        self.assertEqual(result['status'], 'migrated')

if __name__ == '__main__':
    unittest.main()
