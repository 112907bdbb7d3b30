"""Execution state, host interface and supporting types of the interpreter."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar

from Crypto.Hash import keccak

from .words import MASK

STACK_LIMIT = 1024


class StatusCode(IntEnum):
    """Outcome of an execution."""

    SUCCESS = 0
    FAILURE = 1
    REVERT = 2
    OUT_OF_GAS = 3
    INVALID_INSTRUCTION = 4
    UNDEFINED_INSTRUCTION = 5
    STACK_OVERFLOW = 6
    STACK_UNDERFLOW = 7
    BAD_JUMP_DESTINATION = 8
    INVALID_MEMORY_ACCESS = 9
    CALL_DEPTH_EXCEEDED = 10
    STATIC_MODE_VIOLATION = 11
    PRECOMPILE_FAILURE = 12
    CONTRACT_VALIDATION_FAILURE = 13
    ARGUMENT_OUT_OF_RANGE = 14
    INTERNAL_ERROR = -1
    REJECTED = -2
    OUT_OF_MEMORY = -3


class Revision(IntEnum):
    """Protocol revisions, in order of activation."""

    FRONTIER = 0
    HOMESTEAD = 1
    TANGERINE_WHISTLE = 2
    SPURIOUS_DRAGON = 3
    BYZANTIUM = 4
    CONSTANTINOPLE = 5
    PETERSBURG = 6
    ISTANBUL = 7
    BERLIN = 8
    LONDON = 9


class AccessStatus(IntEnum):
    """Whether an account or storage slot was already accessed."""

    COLD = 0
    WARM = 1


class StorageStatus(IntEnum):
    """Effect of a storage write."""

    UNCHANGED = 0
    MODIFIED = 1
    MODIFIED_AGAIN = 2
    ADDED = 3
    DELETED = 4


class ExecutionError(Exception):
    """Raised when execution must stop with a non-success status."""

    def __init__(self, status: StatusCode, detail: str = "") -> None:
        super().__init__(detail or status.name.lower().replace("_", " "))
        self.status = status


@dataclass
class Message:
    """The call message the code is executed for."""

    STATIC: ClassVar[int] = 1

    gas: int = 0
    depth: int = 0
    flags: int = 0
    recipient: bytes = bytes(20)
    sender: bytes = bytes(20)
    input_data: bytes = b""
    value: int = 0

    @property
    def is_static(self) -> bool:
        return bool(self.flags & self.STATIC)


@dataclass
class TxContext:
    """Transaction and block information."""

    tx_gas_price: int = 0
    tx_origin: bytes = bytes(20)
    block_coinbase: bytes = bytes(20)
    block_number: int = 0
    block_timestamp: int = 0
    block_gas_limit: int = 0
    block_difficulty: int = 0
    chain_id: int = 0
    block_base_fee: int = 0


def _keccak256(data: bytes) -> int:
    return int.from_bytes(keccak.new(digest_bits=256, data=data).digest(), "big")


@dataclass
class Host:
    """An in-memory world state the interpreter talks to."""

    balances: dict[bytes, int] = field(default_factory=dict)
    codes: dict[bytes, bytes] = field(default_factory=dict)
    storage: dict[bytes, dict[int, int]] = field(default_factory=dict)
    block_hashes: dict[int, int] = field(default_factory=dict)
    tx_context: TxContext = field(default_factory=TxContext)
    logs: list[tuple[bytes, bytes, tuple[int, ...]]] = field(default_factory=list)
    selfdestructs: list[tuple[bytes, bytes]] = field(default_factory=list)
    recorded_account_accesses: list[bytes] = field(default_factory=list)
    _warm_accounts: set[bytes] = field(default_factory=set, init=False, repr=False)
    _warm_slots: set[tuple[bytes, int]] = field(default_factory=set, init=False, repr=False)
    _dirty_slots: set[tuple[bytes, int]] = field(default_factory=set, init=False, repr=False)

    def _exists(self, address: bytes) -> bool:
        return address in self.balances or address in self.codes or address in self.storage

    def account_exists(self, address: bytes) -> bool:
        self.recorded_account_accesses.append(address)
        return self._exists(address)

    def get_storage(self, address: bytes, key: int) -> int:
        return self.storage.get(address, {}).get(key, 0)

    def set_storage(self, address: bytes, key: int, value: int) -> StorageStatus:
        slots = self.storage.setdefault(address, {})
        current = slots.get(key, 0)
        if current == value:
            return StorageStatus.UNCHANGED
        slot_id = (address, key)
        if slot_id in self._dirty_slots:
            status = StorageStatus.MODIFIED_AGAIN
        else:
            self._dirty_slots.add(slot_id)
            if current == 0:
                status = StorageStatus.ADDED
            elif value == 0:
                status = StorageStatus.DELETED
            else:
                status = StorageStatus.MODIFIED
        slots[key] = value
        return status

    def get_balance(self, address: bytes) -> int:
        self.recorded_account_accesses.append(address)
        return self.balances.get(address, 0)

    def get_code_size(self, address: bytes) -> int:
        self.recorded_account_accesses.append(address)
        return len(self.codes.get(address, b""))

    def get_code_hash(self, address: bytes) -> int:
        self.recorded_account_accesses.append(address)
        if not self._exists(address):
            return 0
        return _keccak256(self.codes.get(address, b""))

    def copy_code(self, address: bytes, code_offset: int, size: int) -> bytes:
        """Return up to size bytes of the account's code starting at code_offset."""
        self.recorded_account_accesses.append(address)
        code = self.codes.get(address, b"")
        if code_offset >= len(code):
            return b""
        return code[code_offset:code_offset + size]

    def selfdestruct(self, address: bytes, beneficiary: bytes) -> None:
        self.recorded_account_accesses.append(address)
        self.selfdestructs.append((address, beneficiary))

    def get_tx_context(self) -> TxContext:
        return self.tx_context

    def get_block_hash(self, number: int) -> int:
        return self.block_hashes.get(number, 0)

    def emit_log(self, address: bytes, data: bytes, topics) -> None:
        self.logs.append((address, bytes(data), tuple(topics)))

    def access_account(self, address: bytes) -> AccessStatus:
        self.recorded_account_accesses.append(address)
        if address in self._warm_accounts:
            return AccessStatus.WARM
        self._warm_accounts.add(address)
        return AccessStatus.COLD

    def access_storage(self, address: bytes, key: int) -> AccessStatus:
        slot_id = (address, key)
        if slot_id in self._warm_slots:
            return AccessStatus.WARM
        self._warm_slots.add(slot_id)
        return AccessStatus.COLD


class Stack:
    """The EVM word stack; index 0 is the top item."""

    def __init__(self) -> None:
        self._items: list[int] = []

    def push(self, value: int) -> None:
        if len(self._items) >= STACK_LIMIT:
            raise ExecutionError(StatusCode.STACK_OVERFLOW)
        self._items.append(value & MASK)

    def pop(self) -> int:
        if not self._items:
            raise ExecutionError(StatusCode.STACK_UNDERFLOW)
        return self._items.pop()

    def top(self) -> int:
        return self[0]

    def _position(self, index: int) -> int:
        if not 0 <= index < len(self._items):
            raise ExecutionError(StatusCode.STACK_UNDERFLOW)
        return len(self._items) - 1 - index

    def __getitem__(self, index: int) -> int:
        return self._items[self._position(index)]

    def __setitem__(self, index: int, value: int) -> None:
        self._items[self._position(index)] = value & MASK

    def __len__(self) -> int:
        return len(self._items)


class Memory:
    """Byte-addressed memory that only grows."""

    def __init__(self) -> None:
        self._data = bytearray()

    def grow(self, new_size: int) -> None:
        """Extend memory with zero bytes up to new_size."""
        if new_size > len(self._data):
            self._data.extend(bytes(new_size - len(self._data)))

    def __len__(self) -> int:
        return len(self._data)

    def _check(self, offset: int, size: int) -> None:
        if offset < 0 or size < 0 or offset + size > len(self._data):
            raise IndexError(f"memory access [{offset}, {offset + size}) out of bounds")

    def read(self, offset: int, size: int) -> bytes:
        self._check(offset, size)
        return bytes(self._data[offset:offset + size])

    def write(self, offset: int, data: bytes) -> None:
        self._check(offset, len(data))
        self._data[offset:offset + len(data)] = data


class ExecutionState:
    """Everything an executing piece of code can see and change."""

    def __init__(
        self,
        message: Message | None = None,
        revision: Revision = Revision.LONDON,
        host: Host | None = None,
        code: bytes = b"",
    ) -> None:
        self.reset(message or Message(), revision, host or Host(), code)

    def reset(self, message: Message, revision: Revision, host: Host, code: bytes) -> None:
        """Bring the state back to the start of a fresh execution."""
        self.gas_left = message.gas
        self.stack = Stack()
        self.memory = Memory()
        self.msg = message
        self.host = host
        self.rev = revision
        self.return_data = b""
        self.code = bytes(code)
        self.status = StatusCode.SUCCESS
        self.output_offset = 0
        self.output_size = 0
        self.jumpdest_map: tuple[bool, ...] = ()

    def consume_gas(self, amount: int) -> int:
        """Charge gas; raise ExecutionError with OUT_OF_GAS when it runs out."""
        self.gas_left -= amount
        if self.gas_left < 0:
            raise ExecutionError(StatusCode.OUT_OF_GAS)
        return self.gas_left