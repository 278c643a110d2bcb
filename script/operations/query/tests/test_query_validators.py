"""Tests for the staked validator query report."""

import io
import unittest
from contextlib import redirect_stdout
from unittest import mock

from operations.query.query_validators import print_tail, query_all


def fake_registry(keys):
    registry = mock.MagicMock()
    registry.functions.getNumberOfStakedValidators.return_value.call.return_value = (len(keys), 2)

    def get_page(start, end):
        page = mock.MagicMock()
        page.call.return_value = (keys[start:end], 2)
        return page

    registry.functions.getStakedValidators.side_effect = get_page
    return registry


class QueryValidatorsTests(unittest.TestCase):
    def test_query_all_returns_hex_pubkeys(self) -> None:
        keys = [bytes([i]) * 48 for i in range(12)]
        out = io.StringIO()

        with redirect_stdout(out):
            result = query_all(fake_registry(keys), page_size=5)

        self.assertEqual(result, [k.hex() for k in keys])
        text = out.getvalue()
        self.assertIn("Number of staked validators: 12", text)
        self.assertIn("Aggregated validator set length: 12", text)
        self.assertNotIn(keys[1].hex(), text)
        self.assertIn(keys[11].hex(), text)

    def test_tail_of_short_set(self) -> None:
        out = io.StringIO()

        with redirect_stdout(out):
            print_tail(["aa", "bb"])

        self.assertEqual(out.getvalue().splitlines()[1:], ["[", "aa,", "bb,", "]"])


if __name__ == "__main__":
    unittest.main()
