"""Tests for exporting registry opt-ins as the opted-in validators CSV."""

import csv
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from operations.opted_in import opted_in_validators
from operations.opted_in.opted_in_slots import VALIDATOR_HEADER, load_validators
from operations.opted_in.opted_in_validators import (
    ZERO_ADDRESS,
    collect_opted_in_validators,
    export_validators,
    to_opted_in,
)
from operations.utils.event_utils import Event

ALICE = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
BOB = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


def event(pubkey: str, originator: str = ALICE, block: int = 1) -> Event:
    return Event(tx_originator=originator, val_bls_pub_key=pubkey, amount=1, block=block)


class ToOptedInTests(unittest.TestCase):
    def test_rows_are_vanilla_and_sorted_by_opt_in_block(self) -> None:
        active = {"bb": event("bb", BOB, block=30), "aa": event("aa", ALICE, block=10), "cc": event("cc", block=10)}

        validators = to_opted_in(active)

        self.assertEqual([(v.pub_key, v.opt_in_block) for v in validators], [("aa", 10), ("cc", 10), ("bb", 30)])
        self.assertEqual({v.opt_in_type for v in validators}, {"Vanilla"})
        self.assertEqual(validators[2].withdrawal_addr, BOB)
        self.assertEqual(validators[0].pod_owner, ZERO_ADDRESS)
        self.assertEqual(validators[0].vault, ZERO_ADDRESS)
        self.assertEqual(validators[0].operator, ZERO_ADDRESS)


class CollectTests(unittest.TestCase):
    def setUp(self) -> None:
        self._print = mock.patch("builtins.print")
        self._print.start()

    def tearDown(self) -> None:
        self._print.stop()

    def test_scans_all_event_types_in_chunks_and_drops_exits(self) -> None:
        logs = {
            "staked": [event("aa", block=5), event("bb", block=6), event("cc", block=7)],
            "unstaked": [event("bb", block=8)],
            "withdraw": [event("cc", block=9)],
        }
        registry = mock.MagicMock()
        registry.w3.eth.block_number = 500

        with mock.patch.object(
            opted_in_validators, "fetch_events", side_effect=lambda r, t, **kw: logs[t]
        ) as fetch:
            validators = collect_opted_in_validators(registry, from_block=100, chunk_size=50)

        self.assertEqual([v.pub_key for v in validators], ["aa"])
        self.assertEqual(validators[0].opt_in_block, 5)
        self.assertEqual(sorted(c.args[1] for c in fetch.call_args_list), ["staked", "unstaked", "withdraw"])
        for call in fetch.call_args_list:
            self.assertEqual(call.kwargs, {"from_block": 100, "to_block": 500, "chunk_size": 50})


class ExportTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)
        self._print = mock.patch("builtins.print")
        self._print.start()

    def tearDown(self) -> None:
        self._print.stop()
        self._tmp.cleanup()

    def test_export_is_readable_by_slot_report(self) -> None:
        path = self.dir / "opted_in_validators.csv"
        validators = to_opted_in({"aa": event("aa", block=10), "bb": event("bb", BOB, block=20)})

        export_validators(path, validators)

        with path.open(newline="") as f:
            rows = list(csv.reader(f))
        self.assertEqual(rows[0], VALIDATOR_HEADER)
        self.assertEqual(rows[1], ["aa", "10", "Vanilla", ZERO_ADDRESS, ZERO_ADDRESS, ZERO_ADDRESS, ALICE])
        loaded = load_validators(path)
        self.assertEqual(loaded["bb"], validators[1])

    def test_main_writes_output(self) -> None:
        output = self.dir / "out.csv"
        registry = mock.MagicMock()
        collected = to_opted_in({"aa": event("aa", block=10)})

        with mock.patch.object(opted_in_validators, "load_env_file"), \
                mock.patch.object(opted_in_validators, "load_network_config"), \
                mock.patch.object(opted_in_validators, "connect"), \
                mock.patch.object(opted_in_validators, "get_registry", return_value=registry), \
                mock.patch.object(
                    opted_in_validators, "collect_opted_in_validators", return_value=collected
                ) as collect:
            opted_in_validators.main(["--from-block", "21950000", "--to-block", "22000000", "--output", str(output)])

        collect.assert_called_once_with(registry, 21_950_000, 22_000_000, opted_in_validators.LOG_CHUNK_SIZE)
        self.assertEqual(len(output.read_text().splitlines()), 2)


if __name__ == "__main__":
    unittest.main()
