import pytest

from ivmlite.state import (
    AccessStatus,
    ExecutionError,
    ExecutionState,
    Host,
    Memory,
    Message,
    Revision,
    Stack,
    StatusCode,
    StorageStatus,
    TxContext,
)

ADDR_A = bytes(19) + b"\xaa"
ADDR_B = bytes(19) + b"\xbb"
EMPTY_CODE_HASH = int(
    "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470", 16
)


def test_stack_is_lifo_and_indexed_from_top():
    stack = Stack()
    for value in (10, 20, 30):
        stack.push(value)
    assert len(stack) == 3
    assert stack.top() == 30
    assert stack[2] == 10
    assert stack.pop() == 30
    assert stack.pop() == 20
    assert len(stack) == 1


def test_stack_setitem():
    stack = Stack()
    stack.push(1)
    stack.push(2)
    stack[1] = 7
    assert stack[1] == 7
    assert stack[0] == 2


def test_stack_masks_values():
    stack = Stack()
    stack.push(2**256 + 5)
    assert stack.top() == 5


def test_stack_underflow():
    stack = Stack()
    with pytest.raises(ExecutionError) as excinfo:
        stack.pop()
    assert excinfo.value.status == StatusCode.STACK_UNDERFLOW
    with pytest.raises(ExecutionError):
        stack.top()


def test_stack_overflow_at_limit():
    stack = Stack()
    for i in range(1024):
        stack.push(i)
    with pytest.raises(ExecutionError) as excinfo:
        stack.push(0)
    assert excinfo.value.status == StatusCode.STACK_OVERFLOW
    assert len(stack) == 1024


def test_memory_grows_with_zeros_and_never_shrinks():
    memory = Memory()
    memory.grow(64)
    assert len(memory) == 64
    assert memory.read(0, 64) == bytes(64)
    memory.grow(32)
    assert len(memory) == 64


def test_memory_write_read_round_trip():
    memory = Memory()
    memory.grow(32)
    memory.write(3, b"\x01\x02\x03")
    assert memory.read(3, 3) == b"\x01\x02\x03"
    assert memory.read(0, 3) == bytes(3)


def test_memory_out_of_bounds():
    memory = Memory()
    memory.grow(32)
    with pytest.raises(IndexError):
        memory.read(30, 3)
    with pytest.raises(IndexError):
        memory.write(31, b"ab")


def test_storage_status_sequence_from_zero():
    host = Host()
    assert host.set_storage(ADDR_A, 1, 5) == StorageStatus.ADDED
    assert host.set_storage(ADDR_A, 1, 6) == StorageStatus.MODIFIED_AGAIN
    assert host.set_storage(ADDR_A, 1, 6) == StorageStatus.UNCHANGED
    assert host.get_storage(ADDR_A, 1) == 6


def test_storage_status_existing_value():
    host = Host(storage={ADDR_A: {1: 5, 2: 5}})
    assert host.set_storage(ADDR_A, 1, 9) == StorageStatus.MODIFIED
    assert host.set_storage(ADDR_A, 2, 0) == StorageStatus.DELETED
    assert host.get_storage(ADDR_A, 2) == 0
    assert host.get_storage(ADDR_B, 1) == 0


def test_access_account_cold_then_warm():
    host = Host()
    assert host.access_account(ADDR_A) == AccessStatus.COLD
    assert host.access_account(ADDR_A) == AccessStatus.WARM
    assert host.recorded_account_accesses == [ADDR_A, ADDR_A]


def test_access_storage_cold_then_warm():
    host = Host()
    assert host.access_storage(ADDR_A, 3) == AccessStatus.COLD
    assert host.access_storage(ADDR_A, 3) == AccessStatus.WARM
    assert host.access_storage(ADDR_B, 3) == AccessStatus.COLD


def test_account_queries():
    host = Host(balances={ADDR_A: 7}, codes={ADDR_A: b"\x60\x00"})
    assert host.account_exists(ADDR_A)
    assert not host.account_exists(ADDR_B)
    assert host.get_balance(ADDR_A) == 7
    assert host.get_balance(ADDR_B) == 0
    assert host.get_code_size(ADDR_A) == 2


def test_code_hash():
    host = Host(balances={ADDR_A: 1})
    assert host.get_code_hash(ADDR_A) == EMPTY_CODE_HASH
    assert host.get_code_hash(ADDR_B) == 0


def test_copy_code_truncates():
    host = Host(codes={ADDR_A: b"\x01\x02\x03\x04"})
    assert host.copy_code(ADDR_A, 1, 2) == b"\x02\x03"
    assert host.copy_code(ADDR_A, 2, 10) == b"\x03\x04"
    assert host.copy_code(ADDR_A, 10, 2) == b""


def test_block_hash_and_tx_context():
    context = TxContext(block_number=100, chain_id=3)
    host = Host(block_hashes={99: 0xABCD}, tx_context=context)
    assert host.get_block_hash(99) == 0xABCD
    assert host.get_block_hash(98) == 0
    assert host.get_tx_context() is context


def test_logs_and_selfdestructs_are_recorded():
    host = Host()
    host.emit_log(ADDR_A, b"data", [1, 2])
    host.selfdestruct(ADDR_A, ADDR_B)
    assert host.logs == [(ADDR_A, b"data", (1, 2))]
    assert host.selfdestructs == [(ADDR_A, ADDR_B)]


def test_message_static_flag():
    assert Message(flags=Message.STATIC).is_static
    assert not Message().is_static


def test_execution_state_starts_from_message():
    message = Message(gas=1000)
    state = ExecutionState(message, Revision.BERLIN, Host(), b"\x00")
    assert state.gas_left == 1000
    assert state.rev == Revision.BERLIN
    assert state.code == b"\x00"
    assert state.status == StatusCode.SUCCESS
    assert len(state.stack) == 0
    assert len(state.memory) == 0


def test_consume_gas():
    state = ExecutionState(Message(gas=100))
    assert state.consume_gas(40) == 60
    with pytest.raises(ExecutionError) as excinfo:
        state.consume_gas(61)
    assert excinfo.value.status == StatusCode.OUT_OF_GAS
    assert state.gas_left < 0


def test_reset_clears_state():
    state = ExecutionState(Message(gas=100))
    state.stack.push(1)
    state.memory.grow(32)
    state.consume_gas(10)
    state.return_data = b"\x01"
    host = Host()
    state.reset(Message(gas=50), Revision.ISTANBUL, host, b"\x01\x02")
    assert state.gas_left == 50
    assert len(state.stack) == 0
    assert len(state.memory) == 0
    assert state.return_data == b""
    assert state.host is host
    assert state.code == b"\x01\x02"
    assert state.rev == Revision.ISTANBUL