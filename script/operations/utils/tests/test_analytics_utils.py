"""Tests for the opened-commitments analytics lookup."""

import unittest
from unittest import mock

from operations.utils.analytics_utils import AnalyticsAPIError, OpenedCommit, fetch_opened_commits


def response(status_code: int = 200, payload=None, text: str = "") -> mock.MagicMock:
    resp = mock.MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload if payload is not None else {}
    resp.text = text
    return resp


def rows_payload(rows) -> dict:
    return {"syncSqlResponse": {"runtimeCost": "1", "result": {"columns": [], "rows": rows}}}


class OpenedCommitsTests(unittest.TestCase):
    def test_rows_keyed_by_block_number(self) -> None:
        session = mock.MagicMock()
        session.post.return_value = response(payload=rows_payload([
            {"blockNumber": "21000000", "bidAmt": "5", "transaction_hash": "0xaa"},
            {"blockNumber": "21000002", "bidAmt": "7", "transaction_hash": "0xbb"},
        ]))

        commits = fetch_opened_commits("http://analytics/query", "key", session)

        self.assertEqual(sorted(commits), [21_000_000, 21_000_002])
        self.assertEqual(commits[21_000_002], OpenedCommit(block_number=21_000_002, bid_amt="7", tx_hash="0xbb"))
        call = session.post.call_args
        self.assertEqual(call.args[0], "http://analytics/query")
        self.assertEqual(call.kwargs["json"], {})
        self.assertEqual(call.kwargs["headers"], {"api-key": "key"})

    def test_error_status(self) -> None:
        session = mock.MagicMock()
        session.post.return_value = response(401, text="unauthorized")

        with self.assertRaises(AnalyticsAPIError) as ctx:
            fetch_opened_commits("http://analytics", "bad", session)
        self.assertIn("401", str(ctx.exception))

    def test_unexpected_body(self) -> None:
        session = mock.MagicMock()
        session.post.return_value = response(payload={"error": "no query"})

        with self.assertRaises(AnalyticsAPIError):
            fetch_opened_commits("http://analytics", "key", session)

    def test_row_without_block_number(self) -> None:
        session = mock.MagicMock()
        session.post.return_value = response(payload=rows_payload([{"bidAmt": "1"}]))

        with self.assertRaises(AnalyticsAPIError):
            fetch_opened_commits("http://analytics", "key", session)

    def test_empty_result(self) -> None:
        session = mock.MagicMock()
        session.post.return_value = response(payload=rows_payload(None))

        self.assertEqual(fetch_opened_commits("http://analytics", "key", session), {})


if __name__ == "__main__":
    unittest.main()
