"""
Tests for the models module.

This module contains unit tests for the data models used in the simulation.
"""

import pytest
from memfit.errors import ConfigError
from memfit.models import Algorithm, MemoryBlock, Process, State


class TestState:
    """Test cases for the State enum."""

    def test_state_values(self):
        """Test that State enum has correct values."""
        assert State.WAITING.value == "waiting"
        assert State.ALLOCATED.value == "allocated"
        assert State.FAILED.value == "failed"
        assert State.TERMINATED.value == "terminated"
        assert State.COMPLETED.value == "completed"


class TestAlgorithm:
    """Test cases for the Algorithm enum."""

    def test_parse_canonical_names(self):
        """Test parsing the canonical selector values."""
        assert Algorithm.parse("first-fit") is Algorithm.FIRST_FIT
        assert Algorithm.parse("best-fit") is Algorithm.BEST_FIT
        assert Algorithm.parse("worst-fit") is Algorithm.WORST_FIT

    def test_parse_is_lenient_with_case_and_underscores(self):
        """Test that upper case and underscores are accepted."""
        assert Algorithm.parse("BEST_FIT") is Algorithm.BEST_FIT
        assert Algorithm.parse("  Worst-Fit ") is Algorithm.WORST_FIT

    def test_parse_accepts_enum(self):
        """Test that an Algorithm passes through unchanged."""
        assert Algorithm.parse(Algorithm.FIRST_FIT) is Algorithm.FIRST_FIT

    def test_parse_unknown_raises_config_error(self):
        """Test that unknown names raise ConfigError."""
        with pytest.raises(ConfigError):
            Algorithm.parse("next-fit")

    def test_every_algorithm_has_description(self):
        """Test that descriptions exist for all strategies."""
        for algorithm in Algorithm:
            assert algorithm.description


class TestProcess:
    """Test cases for the Process class."""

    def test_process_creation_with_defaults(self):
        """Test creating a Process with default values."""
        process = Process(pid=1, size=64)

        assert process.pid == 1
        assert process.size == 64
        assert process.lifetime == 5000
        assert process.state == State.WAITING
        assert process.allocated_at is None
        assert process.elapsed_before_pause is None

    def test_remaining_is_none_when_not_allocated(self):
        """Test that only allocated processes report remaining lifetime."""
        process = Process(pid=1, size=64)
        assert process.remaining(1000) is None

    def test_remaining_counts_down_from_allocation(self):
        """Test remaining lifetime while allocated."""
        process = Process(pid=1, size=64, lifetime=5000, state=State.ALLOCATED, allocated_at=1000)

        assert process.elapsed(3000) == 2000
        assert process.remaining(3000) == 3000
        assert process.remaining(9000) == 0

    def test_elapsed_is_frozen_during_pause(self):
        """Test that elapsed_before_pause overrides the clock."""
        process = Process(pid=1, size=64, state=State.ALLOCATED, allocated_at=0,
                          elapsed_before_pause=2000)

        assert process.elapsed(10000) == 2000
        assert process.remaining(10000) == 3000

    def test_process_to_row(self):
        """Test Process.to_row() method."""
        process = Process(pid=3, size=256, lifetime=4000, state=State.ALLOCATED, allocated_at=500)

        row = process.to_row(1500)

        expected = {
            'pid': 3,
            'size': 256,
            'state': 'allocated',
            'lifetime': 4000,
            'allocated_at': 500,
            'remaining': 3000,
        }
        assert row == expected

    def test_process_to_row_without_time(self):
        """Test that to_row() omits remaining time when no instant is given."""
        row = Process(pid=1, size=10).to_row()
        assert row['remaining'] is None
        assert row['state'] == 'waiting'


class TestMemoryBlock:
    """Test cases for the MemoryBlock class."""

    def test_block_creation_with_defaults(self):
        """Test creating a free MemoryBlock."""
        block = MemoryBlock(size=100)

        assert block.size == 100
        assert block.allocated is False
        assert block.process_id is None
        assert block.address == 0
        assert block.deallocating is False
        assert block.is_free is True

    def test_allocated_block_is_not_free(self):
        """Test is_free on an allocated block."""
        block = MemoryBlock(size=100, allocated=True, process_id=2)
        assert block.is_free is False

    def test_end_address(self):
        """Test the last address covered by a block."""
        block = MemoryBlock(size=16, address=32)
        assert block.end_address == 47

    def test_fits(self):
        """Test MemoryBlock.fits for free and allocated blocks."""
        free_block = MemoryBlock(size=100)
        assert free_block.fits(100)
        assert free_block.fits(20)
        assert not free_block.fits(101)

        allocated_block = MemoryBlock(size=100, allocated=True, process_id=1)
        assert not allocated_block.fits(20)
