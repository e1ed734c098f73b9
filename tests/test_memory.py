"""
Tests for the memory module.

This module contains unit tests for fit algorithms, block splitting, merging
and compaction.
"""

import pytest
from memfit.errors import ConfigError
from memfit.memory import MemoryManager, best_fit, first_fit, worst_fit
from memfit.models import Algorithm, MemoryBlock


def free_blocks(*sizes):
    return [MemoryBlock(size=size) for size in sizes]


def used(size, pid):
    return MemoryBlock(size=size, allocated=True, process_id=pid)


def manager_with(blocks):
    manager = MemoryManager()
    manager.blocks = blocks
    manager.total_memory = sum(b.size for b in blocks)
    manager.compute_addresses()
    return manager


class TestFitAlgorithms:
    """Test cases for first-fit, best-fit and worst-fit."""

    def test_first_fit_selects_first_qualifying(self):
        """First-fit on [30, 10, 50] with request 20 selects the 30 block."""
        assert first_fit(free_blocks(30, 10, 50), 20) == 0

    def test_best_fit_selects_smallest_leftover(self):
        """Best-fit prefers 30 over 50, and 25 when available."""
        assert best_fit(free_blocks(30, 10, 50), 20) == 0
        assert best_fit(free_blocks(30, 25, 50), 20) == 1

    def test_worst_fit_selects_largest_leftover(self):
        """Worst-fit on [30, 10, 50] with request 20 selects the 50 block."""
        assert worst_fit(free_blocks(30, 10, 50), 20) == 2

    def test_ties_keep_earliest_block(self):
        """Equal leftovers resolve to the lowest address."""
        assert best_fit(free_blocks(10, 30, 30), 20) == 1
        assert worst_fit(free_blocks(50, 10, 50), 20) == 0

    def test_exact_fit_qualifies(self):
        """A block of exactly the requested size is a valid fit."""
        assert first_fit(free_blocks(10, 20), 20) == 1
        assert best_fit(free_blocks(40, 20), 20) == 1

    def test_allocated_blocks_are_skipped(self):
        """Allocated blocks never qualify, whatever their size."""
        blocks = [used(100, 1), MemoryBlock(size=30)]
        for fit in (first_fit, best_fit, worst_fit):
            assert fit(blocks, 20) == 1

    def test_no_fit_returns_none(self):
        """None is returned when no free block is large enough."""
        blocks = [MemoryBlock(size=10), used(100, 1), MemoryBlock(size=15)]
        for fit in (first_fit, best_fit, worst_fit):
            assert fit(blocks, 20) is None

    def test_find_fit_dispatches_by_algorithm(self):
        """MemoryManager.find_fit uses the requested strategy."""
        manager = manager_with(free_blocks(30, 10, 50))

        assert manager.find_fit(Algorithm.FIRST_FIT, 20) == 0
        assert manager.find_fit(Algorithm.BEST_FIT, 20) == 0
        assert manager.find_fit(Algorithm.WORST_FIT, 20) == 2
        assert manager.find_fit("worst-fit", 20) == 2


class TestInitialize:
    """Test cases for MemoryManager.initialize."""

    def test_remainder_block_is_appended(self):
        """Memory beyond the configured blocks becomes a trailing free block."""
        manager = MemoryManager()
        manager.initialize([100, 500, 200], 1000)

        assert [b.size for b in manager.blocks] == [100, 500, 200, 200]
        assert [b.address for b in manager.blocks] == [0, 100, 600, 800]
        assert all(b.is_free for b in manager.blocks)
        assert manager.total_size == 1000

    def test_no_remainder_when_blocks_fill_memory(self):
        """No extra block is created when the blocks cover all memory."""
        manager = MemoryManager()
        manager.initialize([60, 40], 100)

        assert [b.size for b in manager.blocks] == [60, 40]

    def test_empty_block_list_gives_single_block(self):
        """Without initial blocks the whole memory is one free block."""
        manager = MemoryManager()
        manager.initialize([], 256)

        assert [b.size for b in manager.blocks] == [256]

    def test_blocks_exceeding_memory_raise(self):
        """A negative remainder is a configuration error."""
        manager = MemoryManager()
        with pytest.raises(ConfigError):
            manager.initialize([600, 600], 1000)

    def test_addresses_start_at_offset(self):
        """Addresses are computed from the base offset."""
        manager = MemoryManager(offset=0x100)
        manager.initialize([16, 16], 48)

        assert [b.address for b in manager.blocks] == [0x100, 0x110, 0x120]


class TestSplitAndFree:
    """Test cases for split and free."""

    def test_split_inserts_free_remainder(self):
        """Allocating a smaller process splits the block in place."""
        manager = MemoryManager()
        manager.initialize([100, 50], 150)

        block = manager.split(0, 30, pid=7)

        assert [b.size for b in manager.blocks] == [30, 70, 50]
        assert block is manager.blocks[0]
        assert block.allocated and block.process_id == 7
        assert manager.blocks[1].is_free
        assert manager.blocks[1].address == 30
        assert manager.total_size == 150

    def test_exact_split_does_not_insert(self):
        """An exact fit is marked allocated without a new block."""
        manager = MemoryManager()
        manager.initialize([100], 100)

        manager.split(0, 100, pid=1)

        assert len(manager.blocks) == 1
        assert manager.blocks[0].allocated

    def test_split_rejects_blocks_that_do_not_fit(self):
        """Splitting an allocated or small block is an error."""
        manager = manager_with([used(50, 1), MemoryBlock(size=10)])

        with pytest.raises(ValueError):
            manager.split(0, 20, pid=2)
        with pytest.raises(ValueError):
            manager.split(1, 20, pid=2)

    def test_free_clears_owner(self):
        """free() marks the block unallocated and clears flags."""
        block = used(50, 3)
        block.deallocating = True
        manager = manager_with([block])

        manager.free(0)

        assert block.is_free
        assert block.process_id is None
        assert block.deallocating is False


class TestMerge:
    """Test cases for merge_adjacent_free."""

    def test_merges_runs_of_free_blocks(self):
        """Adjacent free blocks collapse into the earlier one."""
        manager = manager_with([
            MemoryBlock(size=10), MemoryBlock(size=20), used(30, 1),
            MemoryBlock(size=5), MemoryBlock(size=5), MemoryBlock(size=5),
        ])

        merges = manager.merge_adjacent_free()

        assert merges == 3
        assert [b.size for b in manager.blocks] == [30, 30, 15]
        assert [b.allocated for b in manager.blocks] == [False, True, False]
        assert [b.address for b in manager.blocks] == [0, 30, 60]

    def test_no_adjacent_free_pairs_remain(self):
        """After merging no two neighbours are both free."""
        manager = manager_with([
            used(10, 1), MemoryBlock(size=10), MemoryBlock(size=10),
            used(10, 2), MemoryBlock(size=10),
        ])
        manager.merge_adjacent_free()

        pairs = zip(manager.blocks, manager.blocks[1:])
        assert not any(a.is_free and b.is_free for a, b in pairs)

    def test_merge_is_idempotent(self):
        """Merging twice gives the same sequence as merging once."""
        manager = manager_with([
            MemoryBlock(size=10), MemoryBlock(size=20), used(30, 1), MemoryBlock(size=5),
        ])
        manager.merge_adjacent_free()
        once = [(b.size, b.allocated) for b in manager.blocks]

        assert manager.merge_adjacent_free() == 0
        assert [(b.size, b.allocated) for b in manager.blocks] == once

    def test_merge_preserves_total(self):
        """Total memory is unchanged by merging."""
        manager = manager_with(free_blocks(1, 2, 3, 4))
        manager.merge_adjacent_free()

        assert [b.size for b in manager.blocks] == [10]
        assert manager.total_size == 10


class TestCompact:
    """Test cases for compaction."""

    def test_compact_moves_free_space_to_end(self):
        """[A:20, free 10, B:30, free 15] compacts to [A:20, B:30, Free:25]."""
        a = used(20, 1)
        b = used(30, 2)
        manager = manager_with([a, MemoryBlock(size=10), b, MemoryBlock(size=15)])

        manager.compact()

        assert manager.blocks[0] is a
        assert manager.blocks[1] is b
        assert manager.blocks[2].is_free and manager.blocks[2].size == 25
        assert len(manager.blocks) == 3
        assert [blk.address for blk in manager.blocks] == [0, 20, 50]

    def test_compact_without_free_space(self):
        """No trailing free block is created when memory is full."""
        manager = manager_with([used(40, 1), used(60, 2)])
        manager.compact()

        assert [blk.size for blk in manager.blocks] == [40, 60]
        assert all(blk.allocated for blk in manager.blocks)


class TestStatistics:
    """Test cases for read helpers."""

    def test_fragmentation_metrics(self):
        """External fragmentation is free memory outside the largest hole."""
        manager = manager_with([MemoryBlock(size=10), used(20, 1), MemoryBlock(size=30)])

        assert manager.allocated_size() == 20
        assert manager.free_size() == 40
        assert manager.largest_free() == 30
        assert manager.external_fragmentation() == 10
        assert manager.has_free_memory()

    def test_metrics_with_full_memory(self):
        """With no free blocks the largest free block is None."""
        manager = manager_with([used(100, 1)])

        assert manager.largest_free() is None
        assert manager.external_fragmentation() == 0
        assert not manager.has_free_memory()

    def test_index_lookups(self):
        """Blocks can be found by identity and by owner pid."""
        target = used(20, 5)
        manager = manager_with([MemoryBlock(size=10), target])

        assert manager.index_of(target) == 1
        assert manager.index_of(MemoryBlock(size=20)) is None
        assert manager.index_of_pid(5) == 1
        assert manager.index_of_pid(6) is None

    def test_table_snapshot(self):
        """table_snapshot returns one entry per block with computed addresses."""
        manager = manager_with([used(16, 1), MemoryBlock(size=48)])

        snapshot = manager.table_snapshot()

        assert snapshot == [
            {'index': 0, 'address': 0, 'end_address': 15, 'size': 16,
             'allocated': True, 'pid': 1, 'deallocating': False},
            {'index': 1, 'address': 16, 'end_address': 63, 'size': 48,
             'allocated': False, 'pid': None, 'deallocating': False},
        ]
