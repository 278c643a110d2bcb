"""Tests for flagging opted-in slots without an opened commitment."""

import csv
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from operations.opted_in import missed_slots
from operations.opted_in.missed_slots import MISSED_HEADER, load_slots, mark_missed
from operations.opted_in.opted_in_slots import OptedInSlot, OptedInValidator, export_slots
from operations.utils.analytics_utils import OpenedCommit
from operations.utils.config import ConfigError

ZERO = "0x0000000000000000000000000000000000000000"


def slot(number: int, block: int, pubkey: str = "aa") -> OptedInSlot:
    validator = OptedInValidator(
        pub_key=pubkey,
        opt_in_block=1,
        opt_in_type="Vanilla",
        pod_owner=ZERO,
        vault=ZERO,
        operator=ZERO,
        withdrawal_addr=ZERO,
    )
    return OptedInSlot(slot=number, block_number=block, validator=validator)


def commit(block: int) -> OpenedCommit:
    return OpenedCommit(block_number=block, bid_amt="1000", tx_hash="0x01")


class MissedSlotsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)
        self._print = mock.patch("builtins.print")
        self._print.start()

    def tearDown(self) -> None:
        self._print.stop()
        self._tmp.cleanup()

    def test_slot_without_commit_is_missed(self) -> None:
        slots = {200: slot(20, 200), 100: slot(10, 100)}

        checked = mark_missed(slots, {100: commit(100), 999: commit(999)})

        self.assertEqual([(c.slot.slot, c.missed) for c in checked], [(10, False), (20, True)])
        self.assertEqual(checked[1].to_row()[-1], "true")

    def test_loads_slot_report_keyed_by_block(self) -> None:
        path = self.dir / "opted_in_slots.csv"
        export_slots(path, [slot(10, 100), slot(11, 101, "bb")])

        slots = load_slots(path)

        self.assertEqual(sorted(slots), [100, 101])
        self.assertEqual(slots[101], slot(11, 101, "bb"))

    def test_malformed_row_rejected(self) -> None:
        path = self.dir / "opted_in_slots.csv"
        path.write_text(
            "slot,blockNumber,pubKey,optInBlock,optInType,podOwner,vault,operator,withdrawalAddr\n"
            f"x,100,aa,1,Vanilla,{ZERO},{ZERO},{ZERO},{ZERO}\n"
        )

        with self.assertRaises(ValueError) as ctx:
            load_slots(path)
        self.assertIn(":2:", str(ctx.exception))

    def test_main_posts_with_key_and_writes_report(self) -> None:
        slots_csv = self.dir / "opted_in_slots.csv"
        output = self.dir / "missed.csv"
        export_slots(slots_csv, [slot(10, 100), slot(11, 101)])
        config = mock.MagicMock(analytics_api_url="http://analytics/default", analytics_api_key="env-key")

        with mock.patch.object(missed_slots, "load_env_file"), \
                mock.patch.object(missed_slots, "load_network_config", return_value=config), \
                mock.patch.object(
                    missed_slots, "fetch_opened_commits", return_value={101: commit(101)}
                ) as fetch:
            missed_slots.main(["--slots-csv", str(slots_csv), "--output", str(output)])

        fetch.assert_called_once_with("http://analytics/default", "env-key")
        with output.open(newline="") as f:
            rows = list(csv.reader(f))
        self.assertEqual(rows[0], MISSED_HEADER)
        self.assertEqual([(r[0], r[-1]) for r in rows[1:]], [("10", "true"), ("11", "false")])

    def test_cli_flags_override_config(self) -> None:
        slots_csv = self.dir / "opted_in_slots.csv"
        export_slots(slots_csv, [])
        config = mock.MagicMock(analytics_api_url="http://analytics/default", analytics_api_key=None)

        with mock.patch.object(missed_slots, "load_env_file"), \
                mock.patch.object(missed_slots, "load_network_config", return_value=config), \
                mock.patch.object(missed_slots, "fetch_opened_commits", return_value={}) as fetch:
            missed_slots.main([
                "--slots-csv", str(slots_csv),
                "--output", str(self.dir / "out.csv"),
                "--api-url", "http://analytics/other",
                "--api-key", "flag-key",
            ])

        fetch.assert_called_once_with("http://analytics/other", "flag-key")

    def test_missing_api_key(self) -> None:
        config = mock.MagicMock(analytics_api_url="http://analytics", analytics_api_key=None)

        with mock.patch.object(missed_slots, "load_env_file"), \
                mock.patch.object(missed_slots, "load_network_config", return_value=config), \
                self.assertRaises(ConfigError):
            missed_slots.main(["--slots-csv", str(self.dir / "slots.csv")])


if __name__ == "__main__":
    unittest.main()
