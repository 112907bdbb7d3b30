# ivmlite

These are building blocks for an Ethereum Virtual Machine interpreter, written in pure Python. The package has four modules.

`ivmlite.words` handles 256-bit words held as Python integers:

- signed conversion, signed division and signed modulo (`sdiv`, `smod`);
- `slt`, `signextend`, `byte_at`, `sar` and `count_significant_bytes`;
- conversion between words, 32-byte big-endian strings and 20-byte addresses.

`ivmlite.state` holds the execution state:

- **Enums:** `StatusCode`, `Revision`, `AccessStatus` and `StorageStatus`.
- **`ExecutionError`:** carries the `StatusCode` an execution ends with.
- **Records:** the `Message` and `TxContext` dataclasses.
- **`Host`:** an in-memory world state. It keeps balances, code, storage, block hashes, logs, self-destructs and warm/cold access tracking. It also records every account access in `recorded_account_accesses`.
- **`Stack`:** index 0 is the top. The stack holds at most 1024 items. Pushing onto a full stack raises `STACK_OVERFLOW`, and reading below the bottom raises `STACK_UNDERFLOW`.
- **`Memory`:** zero-filled byte memory that only grows. `read` and `write` raise `IndexError` outside its bounds.
- **`ExecutionState`:** gas, stack, memory, message, host, revision, code, return data, output region and `jumpdest_map`. `consume_gas` raises `ExecutionError(OUT_OF_GAS)` when gas runs out.

`ivmlite.instructions` has one function per opcode, covering arithmetic through `SELFDESTRUCT`:

- **Memory expansion cost:** charged through `grow_memory` and `check_memory`.
- **Cold/warm access surcharges:** from Berlin on.
- **`EXP` byte cost:** priced by revision.
- **`SSTORE` pricing:** differs per revision.
- **Static-mode checks:** applied where the opcode needs them.

Failures raise `ExecutionError`. `stop`, `return_`, `invalid` and `selfdestruct` return a `StopToken` naming the final status. `jump`, `jumpi`, `pc` and `push` return the next code position. `jump` and `jumpi` validate the target against `state.jumpdest_map`, a sequence of booleans indexed by code offset. You fill that map in yourself; `reset` leaves it empty.

`ivmlite.analysis` provides `analyze`, which splits bytecode into basic blocks. Each block opens with a BEGINBLOCK instruction whose `arg` is a `BlockInfo`:

- gas cost;
- stack requirement;
- maximum stack growth.

Values are clamped to the sizes the compressed form can hold. Push values are decoded into the instruction's `arg`. A truncated push at the end of the code is zero-padded. The gas-aware opcodes (`GAS`, `SSTORE`, calls and creates) get the block's gas cost so far as their `arg`, and `PC` gets its offset.

`find_jumpdest` maps a `JUMPDEST` code offset to its instruction index, or returns -1. `AdvancedExecutionState` adds `exit` and a `current_block_cost` counter.

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
from ivmlite import instructions
from ivmlite.state import ExecutionError, ExecutionState, Host, Message, Revision, StatusCode

state = ExecutionState()
state.reset(Message(gas=100_000), Revision.BERLIN, Host(), bytes.fromhex("6007600d01"))

state.stack.push(7)
state.stack.push(13)
instructions.add(state)
assert state.stack.top() == 20

try:
    instructions.pop(state)
    instructions.pop(state)
except ExecutionError as error:
    assert error.status == StatusCode.STACK_UNDERFLOW
```

Code analysis needs an op table: a sequence of exactly 256 `OpTableEntry` values. Each entry gives the opcode's function, base gas cost, stack requirement and stack change.

```python
from ivmlite.analysis import OpTableEntry, analyze, find_jumpdest

table = [OpTableEntry(fn=i, gas_cost=3, stack_req=0, stack_change=0) for i in range(256)]
analysis = analyze(table, bytes.fromhex("6001565b00"))  # PUSH1 1, JUMP, JUMPDEST, STOP

assert find_jumpdest(analysis, 3) == 3    # index of the BEGINBLOCK standing for the JUMPDEST
assert find_jumpdest(analysis, 0) == -1   # offset 0 is not a JUMPDEST
```

## What this package does not do

The package has no interpreter loop that runs a whole program. You drive the instruction functions yourself, or dispatch over the `analyze` output yourself.

Some pieces are left out entirely:

- the `CALL`, `CALLCODE`, `DELEGATECALL`, `STATICCALL`, `CREATE` and `CREATE2` instructions;
- ready-made per-revision op tables with gas costs;
- execution tracing;
- a command-line tool.