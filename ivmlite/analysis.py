"""Code analysis for the advanced interpreter.

The bytecode is split into basic blocks. Each block starts with an injected
BEGINBLOCK instruction carrying the block's total base gas cost and stack
requirements. JUMPDESTs are replaced by the BEGINBLOCK of the block they open.
"""

from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from .state import ExecutionState, Host, Message, Revision, StatusCode

OP_STOP = 0x00
OP_SSTORE = 0x55
OP_JUMP = 0x56
OP_JUMPI = 0x57
OP_PC = 0x58
OP_GAS = 0x5A
OP_JUMPDEST = 0x5B
OP_PUSH1 = 0x60
OP_PUSH8 = 0x67
OP_PUSH9 = 0x68
OP_PUSH32 = 0x7F
OP_CREATE = 0xF0
OP_CALL = 0xF1
OP_CALLCODE = 0xF2
OP_RETURN = 0xF3
OP_DELEGATECALL = 0xF4
OP_CREATE2 = 0xF5
OP_STATICCALL = 0xFA
OP_REVERT = 0xFD
OP_SELFDESTRUCT = 0xFF

#: The injected instruction that opens every basic block; an alias of JUMPDEST.
OPX_BEGINBLOCK = OP_JUMPDEST

#: Largest values the compressed block information can hold.
MAX_BLOCK_GAS_COST = (1 << 32) - 1
MAX_BLOCK_STACK_VALUE = (1 << 15) - 1

_TERMINATORS = frozenset(
    {OP_JUMP, OP_JUMPI, OP_STOP, OP_RETURN, OP_REVERT, OP_SELFDESTRUCT}
)
_GAS_AWARE = frozenset(
    {
        OP_GAS,
        OP_CALL,
        OP_CALLCODE,
        OP_DELEGATECALL,
        OP_STATICCALL,
        OP_CREATE,
        OP_CREATE2,
        OP_SSTORE,
    }
)


@dataclass(frozen=True)
class BlockInfo:
    """Compressed information about a basic block."""

    gas_cost: int = 0
    stack_req: int = 0
    stack_max_growth: int = 0


@dataclass(frozen=True)
class OpTableEntry:
    """How an opcode is executed and what it statically costs and needs."""

    fn: Callable[..., Any] | Any
    gas_cost: int
    stack_req: int
    stack_change: int


@dataclass
class Instruction:
    """One entry of the generated instruction table.

    ``arg`` holds a :class:`BlockInfo` for BEGINBLOCK, the pushed value for
    PUSH instructions, and a number (gas cost so far or code position) for
    instructions that need one; otherwise it is ``None``.
    """

    fn: Callable[..., Any] | Any
    arg: Any = None


@dataclass
class AdvancedCodeAnalysis:
    """The result of analysing a piece of code."""

    instrs: list[Instruction] = field(default_factory=list)
    push_values: list[int] = field(default_factory=list)
    jumpdest_offsets: list[int] = field(default_factory=list)
    jumpdest_targets: list[int] = field(default_factory=list)


class AdvancedExecutionState(ExecutionState):
    """Execution state specialised for the advanced interpreter."""

    def __init__(
        self,
        message: Message | None = None,
        revision: Revision = Revision.LONDON,
        host: Host | None = None,
        code: bytes = b"",
    ) -> None:
        super().__init__(message, revision, host, code)

    def exit(self, status: StatusCode) -> None:
        """Terminate execution with the given status; there is no next instruction."""
        self.status = status
        return None

    def reset(self, message: Message, revision: Revision, host: Host, code: bytes) -> None:
        """Bring the state back to the start of a fresh execution."""
        super().reset(message, revision, host, code)
        self.analysis: AdvancedCodeAnalysis | None = None
        self.current_block_cost = 0


@dataclass
class _BlockAnalysis:
    begin_block_index: int
    gas_cost: int = 0
    stack_req: int = 0
    stack_max_growth: int = 0
    stack_change: int = 0

    def close(self) -> BlockInfo:
        return BlockInfo(
            gas_cost=min(self.gas_cost, MAX_BLOCK_GAS_COST),
            stack_req=min(self.stack_req, MAX_BLOCK_STACK_VALUE),
            stack_max_growth=min(self.stack_max_growth, MAX_BLOCK_STACK_VALUE),
        )


def find_jumpdest(analysis: AdvancedCodeAnalysis, offset: int) -> int:
    """Return the instruction index a jump to offset lands on, or -1 if invalid."""
    offsets = analysis.jumpdest_offsets
    i = bisect_left(offsets, offset)
    if i < len(offsets) and offsets[i] == offset:
        return analysis.jumpdest_targets[i]
    return -1


def analyze(op_table: Sequence[OpTableEntry], code: bytes) -> AdvancedCodeAnalysis:
    """Split code into basic blocks and build its instruction table."""
    if len(op_table) != 256:
        raise ValueError(f"op table must have 256 entries, got {len(op_table)}")

    code = bytes(code)
    beginblock_fn = op_table[OPX_BEGINBLOCK].fn
    analysis = AdvancedCodeAnalysis()
    instrs = analysis.instrs

    instrs.append(Instruction(beginblock_fn))
    block = _BlockAnalysis(0)

    code_end = len(code)
    pos = 0
    while pos != code_end:
        opcode = code[pos]
        pos += 1
        entry = op_table[opcode]

        block.stack_req = max(block.stack_req, entry.stack_req - block.stack_change)
        block.stack_change += entry.stack_change
        block.stack_max_growth = max(block.stack_max_growth, block.stack_change)
        block.gas_cost += entry.gas_cost

        if opcode == OP_JUMPDEST:
            # A JUMPDEST always opens a block; its BEGINBLOCK stands for it.
            analysis.jumpdest_offsets.append(pos - 1)
            analysis.jumpdest_targets.append(len(instrs) - 1)
        else:
            instrs.append(Instruction(entry.fn))

        instr = instrs[-1]

        if OP_PUSH1 <= opcode <= OP_PUSH32:
            push_size = opcode - OP_PUSH1 + 1
            # Missing trailing bytes of a truncated push read as zero.
            data = code[pos:pos + push_size]
            pos += len(data)
            value = int.from_bytes(data.ljust(push_size, b"\x00"), "big")
            if opcode >= OP_PUSH9:
                analysis.push_values.append(value)
            instr.arg = value
        elif opcode in _GAS_AWARE:
            instr.arg = block.gas_cost
        elif opcode == OP_PC:
            instr.arg = pos - 1

        if opcode in _TERMINATORS or (pos != code_end and code[pos] == OP_JUMPDEST):
            instrs[block.begin_block_index].arg = block.close()
            instrs.append(Instruction(beginblock_fn))
            block = _BlockAnalysis(len(instrs) - 1)

    instrs[block.begin_block_index].arg = block.close()
    instrs.append(Instruction(op_table[OP_STOP].fn))
    return analysis