"""Implementations of the individual EVM instructions.

Each function operates on an :class:`~ivmlite.state.ExecutionState`.
Failures raise :class:`~ivmlite.state.ExecutionError` carrying the status
the execution ends with. Instructions that end execution return a
:class:`StopToken` naming the final status.
"""

from __future__ import annotations

from dataclasses import dataclass

from Crypto.Hash import keccak

from . import words
from .state import AccessStatus, ExecutionError, ExecutionState, Revision, StatusCode, StorageStatus
from .words import MASK, WORD_SIZE, address_from_word, word_from_bytes, word_to_bytes

MAX_BUFFER_SIZE = (1 << 32) - 1

COLD_SLOAD_COST = 2100
COLD_ACCOUNT_ACCESS_COST = 2600
WARM_STORAGE_READ_COST = 100
ADDITIONAL_COLD_ACCOUNT_ACCESS_COST = COLD_ACCOUNT_ACCESS_COST - WARM_STORAGE_READ_COST

_UINT64_MASK = (1 << 64) - 1


@dataclass(frozen=True)
class StopToken:
    """Marks an instruction that unconditionally terminates execution."""

    status: StatusCode


def num_words(size_in_bytes: int) -> int:
    """Number of 32-byte words needed to hold the given number of bytes."""
    return (size_in_bytes + WORD_SIZE - 1) // WORD_SIZE


def _memory_cost(num: int) -> int:
    return 3 * num + num * num // 512


def grow_memory(state: ExecutionState, new_size: int) -> None:
    """Expand memory to cover new_size bytes, charging the expansion cost."""
    new_words = num_words(new_size)
    current_words = len(state.memory) // WORD_SIZE
    state.consume_gas(_memory_cost(new_words) - _memory_cost(current_words))
    state.memory.grow(new_words * WORD_SIZE)


def check_memory(state: ExecutionState, offset: int, size: int) -> None:
    """Make sure memory covers [offset, offset + size), growing it if needed.

    A zero size is always valid, whatever the offset.
    """
    if size == 0:
        return
    if size > MAX_BUFFER_SIZE or offset > MAX_BUFFER_SIZE:
        raise ExecutionError(StatusCode.OUT_OF_GAS)
    new_size = offset + size
    if new_size > len(state.memory):
        grow_memory(state, new_size)


def _charge_cold_account(state: ExecutionState, addr: bytes, cost: int) -> None:
    if state.rev >= Revision.BERLIN and state.host.access_account(addr) == AccessStatus.COLD:
        state.consume_gas(cost)


def _require_non_static(state: ExecutionState) -> None:
    if state.msg.is_static:
        raise ExecutionError(StatusCode.STATIC_MODE_VIOLATION)


def stop(state: ExecutionState) -> StopToken:
    return StopToken(StatusCode.SUCCESS)


def add(state: ExecutionState) -> None:
    x = state.stack.pop()
    state.stack[0] = state.stack[0] + x


def mul(state: ExecutionState) -> None:
    x = state.stack.pop()
    state.stack[0] = state.stack[0] * x


def sub(state: ExecutionState) -> None:
    x = state.stack.pop()
    state.stack[0] = x - state.stack[0]


def div(state: ExecutionState) -> None:
    x = state.stack.pop()
    d = state.stack[0]
    state.stack[0] = x // d if d else 0


def sdiv(state: ExecutionState) -> None:
    x = state.stack.pop()
    state.stack[0] = words.sdiv(x, state.stack[0])


def mod(state: ExecutionState) -> None:
    x = state.stack.pop()
    d = state.stack[0]
    state.stack[0] = x % d if d else 0


def smod(state: ExecutionState) -> None:
    x = state.stack.pop()
    state.stack[0] = words.smod(x, state.stack[0])


def addmod(state: ExecutionState) -> None:
    x = state.stack.pop()
    y = state.stack.pop()
    m = state.stack[0]
    state.stack[0] = (x + y) % m if m else 0


def mulmod(state: ExecutionState) -> None:
    x = state.stack.pop()
    y = state.stack.pop()
    m = state.stack[0]
    state.stack[0] = (x * y) % m if m else 0


def exp(state: ExecutionState) -> None:
    base = state.stack.pop()
    exponent = state.stack[0]
    per_byte = 50 if state.rev >= Revision.SPURIOUS_DRAGON else 10
    state.consume_gas(words.count_significant_bytes(exponent) * per_byte)
    state.stack[0] = pow(base, exponent, 1 << words.WORD_BITS)


def signextend(state: ExecutionState) -> None:
    ext = state.stack.pop()
    state.stack[0] = words.signextend(ext, state.stack[0])


def lt(state: ExecutionState) -> None:
    x = state.stack.pop()
    state.stack[0] = int(x < state.stack[0])


def gt(state: ExecutionState) -> None:
    x = state.stack.pop()
    state.stack[0] = int(state.stack[0] < x)


def slt(state: ExecutionState) -> None:
    x = state.stack.pop()
    state.stack[0] = int(words.slt(x, state.stack[0]))


def sgt(state: ExecutionState) -> None:
    x = state.stack.pop()
    state.stack[0] = int(words.slt(state.stack[0], x))


def eq(state: ExecutionState) -> None:
    x = state.stack.pop()
    state.stack[0] = int(x == state.stack[0])


def iszero(state: ExecutionState) -> None:
    state.stack[0] = int(state.stack[0] == 0)


def and_(state: ExecutionState) -> None:
    x = state.stack.pop()
    state.stack[0] = state.stack[0] & x


def or_(state: ExecutionState) -> None:
    x = state.stack.pop()
    state.stack[0] = state.stack[0] | x


def xor_(state: ExecutionState) -> None:
    x = state.stack.pop()
    state.stack[0] = state.stack[0] ^ x


def not_(state: ExecutionState) -> None:
    state.stack[0] = ~state.stack[0] & MASK


def byte(state: ExecutionState) -> None:
    n = state.stack.pop()
    state.stack[0] = words.byte_at(n, state.stack[0])


def shl(state: ExecutionState) -> None:
    shift = state.stack.pop()
    state.stack[0] = (state.stack[0] << shift) & MASK if shift < words.WORD_BITS else 0


def shr(state: ExecutionState) -> None:
    shift = state.stack.pop()
    state.stack[0] = state.stack[0] >> shift if shift < words.WORD_BITS else 0


def sar(state: ExecutionState) -> None:
    shift = state.stack.pop()
    state.stack[0] = words.sar(shift, state.stack[0])


def keccak256(state: ExecutionState) -> None:
    index = state.stack.pop()
    size = state.stack[0]
    check_memory(state, index, size)
    state.consume_gas(num_words(size) * 6)
    data = state.memory.read(index, size) if size else b""
    digest = keccak.new(digest_bits=256, data=data).digest()
    state.stack[0] = word_from_bytes(digest)


def address(state: ExecutionState) -> None:
    state.stack.push(word_from_bytes(state.msg.recipient))


def balance(state: ExecutionState) -> None:
    addr = address_from_word(state.stack[0])
    _charge_cold_account(state, addr, ADDITIONAL_COLD_ACCOUNT_ACCESS_COST)
    state.stack[0] = state.host.get_balance(addr)


def origin(state: ExecutionState) -> None:
    state.stack.push(word_from_bytes(state.host.get_tx_context().tx_origin))


def caller(state: ExecutionState) -> None:
    state.stack.push(word_from_bytes(state.msg.sender))


def callvalue(state: ExecutionState) -> None:
    state.stack.push(state.msg.value)


def calldataload(state: ExecutionState) -> None:
    index = state.stack[0]
    input_data = state.msg.input_data
    if len(input_data) < index:
        state.stack[0] = 0
    else:
        chunk = input_data[index:index + WORD_SIZE]
        state.stack[0] = word_from_bytes(chunk.ljust(WORD_SIZE, b"\x00"))


def calldatasize(state: ExecutionState) -> None:
    state.stack.push(len(state.msg.input_data))


def _copy_into_memory(state: ExecutionState, source: bytes) -> None:
    mem_index = state.stack.pop()
    input_index = state.stack.pop()
    size = state.stack.pop()
    check_memory(state, mem_index, size)
    src = min(input_index, len(source))
    copy_size = min(size, len(source) - src)
    state.consume_gas(num_words(size) * 3)
    if size > 0:
        chunk = source[src:src + copy_size]
        state.memory.write(mem_index, chunk + bytes(size - copy_size))


def calldatacopy(state: ExecutionState) -> None:
    _copy_into_memory(state, state.msg.input_data)


def codesize(state: ExecutionState) -> None:
    state.stack.push(len(state.code))


def codecopy(state: ExecutionState) -> None:
    _copy_into_memory(state, state.code)


def gasprice(state: ExecutionState) -> None:
    state.stack.push(state.host.get_tx_context().tx_gas_price)


def basefee(state: ExecutionState) -> None:
    state.stack.push(state.host.get_tx_context().block_base_fee)


def extcodesize(state: ExecutionState) -> None:
    addr = address_from_word(state.stack[0])
    _charge_cold_account(state, addr, ADDITIONAL_COLD_ACCOUNT_ACCESS_COST)
    state.stack[0] = state.host.get_code_size(addr)


def extcodecopy(state: ExecutionState) -> None:
    addr = address_from_word(state.stack.pop())
    mem_index = state.stack.pop()
    input_index = state.stack.pop()
    size = state.stack.pop()
    check_memory(state, mem_index, size)
    state.consume_gas(num_words(size) * 3)
    _charge_cold_account(state, addr, ADDITIONAL_COLD_ACCOUNT_ACCESS_COST)
    if size > 0:
        src = min(input_index, MAX_BUFFER_SIZE)
        copied = state.host.copy_code(addr, src, size)[:size]
        state.memory.write(mem_index, copied + bytes(size - len(copied)))


def returndatasize(state: ExecutionState) -> None:
    state.stack.push(len(state.return_data))


def returndatacopy(state: ExecutionState) -> None:
    mem_index = state.stack.pop()
    input_index = state.stack.pop()
    size = state.stack.pop()
    check_memory(state, mem_index, size)
    if len(state.return_data) < input_index:
        raise ExecutionError(StatusCode.INVALID_MEMORY_ACCESS)
    if input_index + size > len(state.return_data):
        raise ExecutionError(StatusCode.INVALID_MEMORY_ACCESS)
    state.consume_gas(num_words(size) * 3)
    if size > 0:
        state.memory.write(mem_index, state.return_data[input_index:input_index + size])


def extcodehash(state: ExecutionState) -> None:
    addr = address_from_word(state.stack[0])
    _charge_cold_account(state, addr, ADDITIONAL_COLD_ACCOUNT_ACCESS_COST)
    state.stack[0] = state.host.get_code_hash(addr)


def blockhash(state: ExecutionState) -> None:
    block_number = state.stack[0]
    upper_bound = state.host.get_tx_context().block_number
    lower_bound = max(upper_bound - 256, 0)
    if lower_bound <= block_number < upper_bound:
        state.stack[0] = state.host.get_block_hash(block_number)
    else:
        state.stack[0] = 0


def coinbase(state: ExecutionState) -> None:
    state.stack.push(word_from_bytes(state.host.get_tx_context().block_coinbase))


def timestamp(state: ExecutionState) -> None:
    state.stack.push(state.host.get_tx_context().block_timestamp & _UINT64_MASK)


def number(state: ExecutionState) -> None:
    state.stack.push(state.host.get_tx_context().block_number & _UINT64_MASK)


def difficulty(state: ExecutionState) -> None:
    state.stack.push(state.host.get_tx_context().block_difficulty)


def gaslimit(state: ExecutionState) -> None:
    state.stack.push(state.host.get_tx_context().block_gas_limit & _UINT64_MASK)


def chainid(state: ExecutionState) -> None:
    state.stack.push(state.host.get_tx_context().chain_id)


def selfbalance(state: ExecutionState) -> None:
    state.stack.push(state.host.get_balance(state.msg.recipient))


def pop(state: ExecutionState) -> None:
    state.stack.pop()


def mload(state: ExecutionState) -> None:
    index = state.stack[0]
    check_memory(state, index, WORD_SIZE)
    state.stack[0] = word_from_bytes(state.memory.read(index, WORD_SIZE))


def mstore(state: ExecutionState) -> None:
    index = state.stack.pop()
    value = state.stack.pop()
    check_memory(state, index, WORD_SIZE)
    state.memory.write(index, word_to_bytes(value))


def mstore8(state: ExecutionState) -> None:
    index = state.stack.pop()
    value = state.stack.pop()
    check_memory(state, index, 1)
    state.memory.write(index, bytes([value & 0xFF]))


def sload(state: ExecutionState) -> None:
    key = state.stack[0]
    recipient = state.msg.recipient
    if (
        state.rev >= Revision.BERLIN
        and state.host.access_storage(recipient, key) == AccessStatus.COLD
    ):
        # The warm read cost is part of the base cost; add only the difference.
        state.consume_gas(COLD_SLOAD_COST - WARM_STORAGE_READ_COST)
    state.stack[0] = state.host.get_storage(recipient, key)


def sstore(state: ExecutionState) -> None:
    _require_non_static(state)
    if state.rev >= Revision.ISTANBUL and state.gas_left <= 2300:
        raise ExecutionError(StatusCode.OUT_OF_GAS)

    key = state.stack.pop()
    value = state.stack.pop()
    recipient = state.msg.recipient

    cost = 0
    if (
        state.rev >= Revision.BERLIN
        and state.host.access_storage(recipient, key) == AccessStatus.COLD
    ):
        cost = COLD_SLOAD_COST

    status = state.host.set_storage(recipient, key, value)
    if status in (StorageStatus.UNCHANGED, StorageStatus.MODIFIED_AGAIN):
        if state.rev >= Revision.BERLIN:
            cost += WARM_STORAGE_READ_COST
        elif state.rev == Revision.ISTANBUL:
            cost = 800
        elif state.rev == Revision.CONSTANTINOPLE:
            cost = 200
        else:
            cost = 5000
    elif status in (StorageStatus.MODIFIED, StorageStatus.DELETED):
        if state.rev >= Revision.BERLIN:
            cost += 5000 - COLD_SLOAD_COST
        else:
            cost = 5000
    elif status == StorageStatus.ADDED:
        cost += 20000
    state.consume_gas(cost)


def _jump_to(state: ExecutionState, dst: int) -> int:
    jumpdest_map = state.jumpdest_map
    if dst >= len(jumpdest_map) or not jumpdest_map[dst]:
        raise ExecutionError(StatusCode.BAD_JUMP_DESTINATION)
    return dst


def jump(state: ExecutionState, pc: int) -> int:
    """Return the code position to continue from after a JUMP."""
    return _jump_to(state, state.stack.pop())


def jumpi(state: ExecutionState, pc: int) -> int:
    """Return the code position to continue from after a JUMPI at pc."""
    dst = state.stack.pop()
    cond = state.stack.pop()
    return _jump_to(state, dst) if cond else pc + 1


def pc(state: ExecutionState, pos: int) -> int:
    state.stack.push(pos)
    return pos + 1


def msize(state: ExecutionState) -> None:
    state.stack.push(len(state.memory))


def gas(state: ExecutionState) -> None:
    state.stack.push(state.gas_left)


def jumpdest(state: ExecutionState) -> None:
    """Execute JUMPDEST, which only marks a jump target and leaves the state as it is."""
    del state


def push(state: ExecutionState, pos: int, length: int) -> int:
    """Push the length bytes following pos; missing trailing bytes read as zero."""
    if not 1 <= length <= WORD_SIZE:
        raise ValueError(f"push length must be in 1..{WORD_SIZE}, got {length}")
    data = state.code[pos + 1:pos + 1 + length].ljust(length, b"\x00")
    state.stack.push(word_from_bytes(data))
    return pos + length + 1


def _check_position(n: int) -> None:
    if not 1 <= n <= 16:
        raise ValueError(f"stack position must be in 1..16, got {n}")


def dup(state: ExecutionState, n: int) -> None:
    _check_position(n)
    state.stack.push(state.stack[n - 1])


def swap(state: ExecutionState, n: int) -> None:
    _check_position(n)
    state.stack[0], state.stack[n] = state.stack[n], state.stack[0]


def log(state: ExecutionState, num_topics: int) -> None:
    if not 0 <= num_topics <= 4:
        raise ValueError(f"number of topics must be in 0..4, got {num_topics}")
    _require_non_static(state)

    offset = state.stack.pop()
    size = state.stack.pop()
    check_memory(state, offset, size)
    state.consume_gas(size * 8)

    topics = tuple(state.stack.pop() for _ in range(num_topics))
    data = state.memory.read(offset, size) if size else b""
    state.host.emit_log(state.msg.recipient, data, topics)


def return_(state: ExecutionState, status: StatusCode) -> StopToken:
    """Set the output region from the top two stack items and stop with status."""
    offset = state.stack[0]
    size = state.stack[1]
    check_memory(state, offset, size)
    state.output_offset = offset
    state.output_size = size
    return StopToken(status)


def invalid(state: ExecutionState) -> StopToken:
    return StopToken(StatusCode.INVALID_INSTRUCTION)


def selfdestruct(state: ExecutionState) -> StopToken:
    _require_non_static(state)

    beneficiary = address_from_word(state.stack[0])
    _charge_cold_account(state, beneficiary, COLD_ACCOUNT_ACCESS_COST)

    if state.rev >= Revision.TANGERINE_WHISTLE:
        if state.rev == Revision.TANGERINE_WHISTLE or state.host.get_balance(state.msg.recipient):
            # Sending value to a non-existing account costs extra.
            if not state.host.account_exists(beneficiary):
                state.consume_gas(25000)

    state.host.selfdestruct(state.msg.recipient, beneficiary)
    return StopToken(StatusCode.SUCCESS)