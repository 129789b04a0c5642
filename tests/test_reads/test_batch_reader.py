"""
Batch Reader Test Suite

Batch planning, paginated collection reads with early termination, and
per-item failure isolation.
"""

import pytest

from ledger_mocks import (
    MOCK_SERVERS_CONTRACT,
    MOCK_USER_ADDRESS,
    SimulatedLedger,
    create_mock_config,
)
from vana_permissions.adapters.bases import CallResult, ContractCall
from vana_permissions.adapters.evm.abis import get_servers_abi
from vana_permissions.engine.exceptions import BlockchainError
from vana_permissions.reads.batch_reader import BatchReader, CollectionKind


def create_reader(ledger, batch_size=100, **kwargs):
    return BatchReader(ledger, create_mock_config().contract_address, batch_size=batch_size, **kwargs)


def create_ledger_with_servers(count: int) -> SimulatedLedger:
    ledger = SimulatedLedger()
    ledger.user_servers[MOCK_USER_ADDRESS] = [1000 + i for i in range(count)]
    return ledger


class TestBatchPlanning:

    def test_splits_on_call_count(self):
        reader = create_reader(SimulatedLedger(), batch_size=3)
        calls = [ContractCall(MOCK_SERVERS_CONTRACT, get_servers_abi(), "servers", [i]) for i in range(7)]

        batches = reader.plan_batches(calls)

        assert [len(b) for b in batches] == [3, 3, 1]

    def test_splits_on_calldata_size(self):
        # each servers(uint256) call is 4 + 32 bytes
        reader = create_reader(SimulatedLedger(), batch_size=100, max_calldata_bytes=36 * 4)
        calls = [ContractCall(MOCK_SERVERS_CONTRACT, get_servers_abi(), "servers", [i]) for i in range(10)]

        batches = reader.plan_batches(calls)

        assert [len(b) for b in batches] == [4, 4, 2]

    @pytest.mark.asyncio
    async def test_execute_keeps_input_order(self):
        ledger = SimulatedLedger()
        for _ in range(5):
            ledger.register_server(MOCK_USER_ADDRESS)
        reader = create_reader(ledger, batch_size=2)
        calls = [ContractCall(MOCK_SERVERS_CONTRACT, get_servers_abi(), "servers", [i]) for i in (5, 1, 3)]

        results = await reader.execute(calls)

        assert [r.value[0] for r in results] == [5, 1, 3]
        assert ledger.multicall_batches == [2, 1]


class TestPagination:

    @pytest.mark.asyncio
    async def test_fetch_all_uses_minimum_batches(self):
        ledger = create_ledger_with_servers(250)
        reader = create_reader(ledger, batch_size=100)

        page = await reader.fetch_all(CollectionKind.TRUSTED_SERVERS, MOCK_USER_ADDRESS)

        assert page.items == [1000 + i for i in range(250)]
        assert page.total_count == 250
        assert page.has_more is False
        assert len(ledger.multicall_batches) == 3

    @pytest.mark.asyncio
    async def test_count_rides_along_with_first_page(self):
        ledger = create_ledger_with_servers(30)
        reader = create_reader(ledger, batch_size=100)

        page = await reader.read_paginated(CollectionKind.TRUSTED_SERVERS, MOCK_USER_ADDRESS, offset=0, limit=10)

        assert page.items == [1000 + i for i in range(10)]
        assert page.total_count == 30
        assert page.has_more is True
        assert ledger.multicall_batches == [11]

    @pytest.mark.asyncio
    async def test_window_past_the_end(self):
        ledger = create_ledger_with_servers(25)
        reader = create_reader(ledger, batch_size=10)

        page = await reader.read_paginated(CollectionKind.TRUSTED_SERVERS, MOCK_USER_ADDRESS, offset=20, limit=10)

        assert page.items == [1020, 1021, 1022, 1023, 1024]
        assert page.failed == []
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_empty_collection(self):
        reader = create_reader(SimulatedLedger())

        page = await reader.fetch_all(CollectionKind.PERMISSIONS, MOCK_USER_ADDRESS)

        assert page.items == []
        assert page.total_count == 0
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_one_failing_item_is_isolated(self):
        ledger = create_ledger_with_servers(5)
        ledger.fail_read("userServerIdsAt", MOCK_USER_ADDRESS, 2)
        reader = create_reader(ledger)

        page = await reader.fetch_all(CollectionKind.TRUSTED_SERVERS, MOCK_USER_ADDRESS)

        assert page.items == [1000, 1001, 1003, 1004]
        assert page.failed == [2]

    @pytest.mark.asyncio
    async def test_short_batch_terminates_early(self, caplog):
        ledger = create_ledger_with_servers(250)
        reader = create_reader(ledger, batch_size=100)
        real_multicall = ledger.multicall

        async def truncating_multicall(calls, allow_failure=True):
            results = await real_multicall(calls, allow_failure)
            if len(ledger.multicall_batches) == 2:
                return results[:40]
            return results

        ledger.multicall = truncating_multicall

        with caplog.at_level("WARNING", logger="vana_permissions"):
            page = await reader.fetch_all(CollectionKind.TRUSTED_SERVERS, MOCK_USER_ADDRESS)

        assert len(page.items) == 140
        assert len(ledger.multicall_batches) == 2
        assert any("stopping" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_grantees_are_enumerated_by_id(self):
        ledger = SimulatedLedger()
        ledger.register_grantee("0x" + "a1" * 20)
        ledger.register_grantee("0x" + "a2" * 20)
        reader = create_reader(ledger)

        page = await reader.read_paginated(CollectionKind.GRANTEES, offset=0, limit=10)

        assert [g.id for g in page.items] == [1, 2]
        assert page.items[1].address.lower() == "0x" + "a2" * 20

    @pytest.mark.asyncio
    async def test_failed_count_read_raises(self):
        ledger = create_ledger_with_servers(3)
        ledger.fail_read("userServerIdsLength", MOCK_USER_ADDRESS)
        reader = create_reader(ledger)

        with pytest.raises(BlockchainError):
            await reader.fetch_all(CollectionKind.TRUSTED_SERVERS, MOCK_USER_ADDRESS)

    @pytest.mark.asyncio
    async def test_owner_required_for_user_collections(self):
        reader = create_reader(SimulatedLedger())
        with pytest.raises(ValueError):
            await reader.read_paginated(CollectionKind.PERMISSIONS)


class TestDetailBatches:

    @pytest.mark.asyncio
    async def test_server_info_batch_marks_unknown_ids_failed(self):
        ledger = SimulatedLedger()
        ledger.register_server("0x" + "c1" * 20, "https://one.example.com")
        ledger.register_server("0x" + "c2" * 20, "https://two.example.com")
        reader = create_reader(ledger)

        batch = await reader.get_server_info_batch([1, 99, 2])

        assert [s.url for s in batch.items] == ["https://one.example.com", "https://two.example.com"]
        assert batch.failed == [99]

    @pytest.mark.asyncio
    async def test_permission_info_batch(self):
        ledger = SimulatedLedger()
        first = ledger.add_user_permission(MOCK_USER_ADDRESS)
        second = ledger.add_user_permission(MOCK_USER_ADDRESS, end_block=500)
        reader = create_reader(ledger)

        batch = await reader.get_permission_info_batch([first, second, 42])

        assert [p.is_active for p in batch.items] == [True, False]
        assert batch.failed == [42]

    @pytest.mark.asyncio
    async def test_multicall_failure_is_wrapped(self):
        ledger = SimulatedLedger()

        async def broken_multicall(calls, allow_failure=True):
            raise ConnectionError("rpc down")

        ledger.multicall = broken_multicall
        reader = create_reader(ledger)

        with pytest.raises(BlockchainError):
            await reader.get_server_info_batch([1])

    @pytest.mark.asyncio
    async def test_known_multicall_error_passes_through(self):
        ledger = SimulatedLedger()
        error = BlockchainError("aggregate3 reverted")

        async def broken_multicall(calls, allow_failure=True):
            raise error

        ledger.multicall = broken_multicall
        reader = create_reader(ledger)

        with pytest.raises(BlockchainError) as exc_info:
            await reader.get_server_info_batch([1])
        assert exc_info.value is error
        assert exc_info.value.__cause__ is None

    def test_call_result_defaults(self):
        assert CallResult(success=True, value=1).error is None
