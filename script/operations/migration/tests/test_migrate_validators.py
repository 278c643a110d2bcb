"""Tests for selecting, batching and delegate-staking migrated validators."""

import unittest
from unittest import mock

from operations.migration.migrate_validators import migrate_batches, plan_batches, select_events
from operations.utils.chain_utils import NonceAllocator, TxRevertedError
from operations.utils.event_utils import Event
from operations.utils.tx_utils import Receipt, TxSubmitter

ALICE = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
BOB = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
SENDER = "0x0000000000000000000000000000000000000001"


def event(pubkey: str, originator: str) -> Event:
    return Event(tx_originator=originator, val_bls_pub_key=pubkey, amount=1, block=1)


class InstantChain:
    def __init__(self, statuses=None) -> None:
        self.statuses = list(statuses or [])

    def get_pending_nonce(self, address: str) -> int:
        return 0

    def suggest_priority_fee(self) -> int:
        return 1

    def suggest_fee_cap(self) -> int:
        return 10

    def wait_for_inclusion(self, tx_hash: str, timeout: float) -> Receipt:
        status = self.statuses.pop(0) if self.statuses else 1
        return Receipt(tx_hash=tx_hash, block_number=1, status=status)

    def get_receipt(self, tx_hash: str):
        return None


class SelectionTests(unittest.TestCase):
    def setUp(self) -> None:
        self._print = mock.patch("builtins.print")
        self._print.start()

    def tearDown(self) -> None:
        self._print.stop()

    def test_excludes_originators_case_insensitively(self) -> None:
        active = {"aa": event("aa", ALICE), "bb": event("bb", BOB)}

        selected = select_events(active, [ALICE.lower()], lambda pk: True)

        self.assertEqual([e.val_bls_pub_key for e in selected], ["bb"])

    def test_skips_keys_unknown_to_beacon_chain(self) -> None:
        active = {"aa": event("aa", ALICE), "bb": event("bb", ALICE), "cc": event("cc", BOB)}
        checked = []

        def is_registered(pubkey):
            checked.append(pubkey)
            return pubkey != "bb"

        selected = select_events(active, [], is_registered)

        self.assertEqual([e.val_bls_pub_key for e in selected], ["aa", "cc"])
        self.assertEqual(checked, ["aa", "bb", "cc"])

    def test_excluded_keys_are_not_looked_up(self) -> None:
        lookup = mock.MagicMock(return_value=True)

        select_events({"aa": event("aa", ALICE)}, [ALICE], lookup)

        lookup.assert_not_called()

    def test_plan_splits_per_originator(self) -> None:
        events = [event("aa", ALICE), event("bb", BOB), event("cc", ALICE), event("dd", ALICE)]

        plan = plan_batches(events, batch_size=2)

        self.assertEqual(
            [(b["originator"], b["pubkeys"]) for b in plan],
            [
                (ALICE, [bytes.fromhex("aa"), bytes.fromhex("cc")]),
                (ALICE, [bytes.fromhex("dd")]),
                (BOB, [bytes.fromhex("bb")]),
            ],
        )


class MigrateBatchesTests(unittest.TestCase):
    def setUp(self) -> None:
        self._print = mock.patch("builtins.print")
        self.printed = self._print.start()

    def tearDown(self) -> None:
        self._print.stop()

    def _run(self, chain, plan):
        calls = []

        def factory(pubkeys, originator):
            def submit(params):
                calls.append((pubkeys, originator, params))
                return f"0x{len(calls):064x}"
            return submit

        receipts = migrate_batches(
            TxSubmitter(chain), chain, NonceAllocator(chain, SENDER), factory, SENDER, plan, 100
        )
        return receipts, calls

    def test_delegates_on_behalf_of_originator(self) -> None:
        plan = [
            {"originator": ALICE, "pubkeys": [b"\x01", b"\x02"]},
            {"originator": BOB, "pubkeys": [b"\x03"]},
        ]

        receipts, calls = self._run(InstantChain(), plan)

        self.assertEqual(len(receipts), 2)
        self.assertEqual([c[1] for c in calls], [ALICE, BOB])
        self.assertEqual([c[2]["value"] for c in calls], [200, 100])
        self.assertEqual([c[2]["nonce"] for c in calls], [0, 1])

    def test_reverted_delegate_stake_fails(self) -> None:
        plan = [{"originator": ALICE, "pubkeys": [b"\x01"]}, {"originator": BOB, "pubkeys": [b"\x02"]}]

        with self.assertRaises(TxRevertedError) as ctx:
            self._run(InstantChain(statuses=[0]), plan)

        self.assertEqual(ctx.exception.index, 1)
        self.printed.assert_any_call(f"Stake originator: {ALICE}")
        self.printed.assert_any_call("Validator pubkey: 01")


if __name__ == "__main__":
    unittest.main()
