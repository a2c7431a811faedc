from keystate import State, run_pending

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Declaring state keys")
print("-" * 100)
print()


# Keys are declared in the STATE hint. Each one reads and writes like a plain attribute.
class Counter(State):
    STATE = {
        "count": {"value": 0, "validator": lambda value, name: isinstance(value, int)},
        "label": {"setter": lambda value, prev: str(value).strip()},
        "history": {"value_fn": list},
    }


counter = Counter({"label": "  clicks  "})

# Nothing is computed until the first read.
print(counter)
print(f"count={counter.count} label={counter.label!r}")
print(counter)

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Listening to changes")
print("-" * 100)
print()


def log_count_change(change):
    print(f"count: {change.prev_val} -> {change.new_val}")


counter.on("count_changed", log_count_change)

counter.count = "ten"  # Rejected by the validator, nothing is printed
counter.count = 10
counter.count = 10  # Same value, nothing is printed
counter.count = 11

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Batched changes")
print("-" * 100)
print()


# Every change of one turn is reported together in a single state_changed event.
def log_batch(batch):
    for name, change in batch.changes.items():
        print(f"{name}: {change.prev_val!r} -> {change.new_val!r}")


counter.on("state_changed", log_batch)
counter.set_state({"count": 12, "label": " taps "})
counter.count = 13

# Outside an asyncio loop, the host runs the turn boundary itself.
print(f"Flushed {run_pending()} batch(es)")

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Write-once keys")
print("-" * 100)
print()


class Account(State):
    STATE = {"account_id": {"write_once": True}, "owner": {"value": "nobody"}}


account = Account({"account_id": "acc-1"})
print(f"account_id={account.account_id}")  # The first read applies the constructor value
account.account_id = "acc-2"  # Ignored, the key was already written
print(f"account_id={account.account_id} can_set={account.can_set_state('account_id')}")

# Keys can also be added at runtime.
account.add_key_to_state("balance", {"value": 0})
account.balance += 100
print(account.get_state())

account.dispose()
print(account)
