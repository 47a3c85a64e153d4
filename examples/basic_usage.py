"""examples/basic_usage.py - steplog integration demo.

Simulates one request through a small payment flow:
    - explicit instrument() calls with labels
    - @trace on the critical functions
    - failures from the standard logging module routed to error.log
    - the stats report written at the end of the request

Run it and look under ./logs/public/ afterwards.
"""

import logging

from steplog import Config, Engine, FailureLogHandler, FailureObserver, RequestContext, trace

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("app")

# ---------------------------------------------------------------------------
# One engine per request, owned by the entry point
# ---------------------------------------------------------------------------
engine = Engine(
    Config(base_path="./logs", use_name_as_dir=True, layout="default", enable_output=True),
    RequestContext(uri="/pay", method="POST", params={"action": "charge"}),
)
observer = FailureObserver(engine)
logging.getLogger().addHandler(FailureLogHandler(observer))


@trace(engine)
def get_balance(user_id: int) -> int:
    """Simulate a DB balance query."""
    return engine.instrument("balance=", 3_000, label="db.fetch")


@trace(engine)
def pay(user_id: int, amount: int) -> None:
    """Simulate a payment flow."""
    balance = get_balance(user_id)

    if balance < amount:
        logger.error("Insufficient funds (balance=%s, requested=%s)", balance, amount)
        raise ValueError(f"InsufficientFunds: balance={balance}, amount={amount}")

    engine.info("payment successful", user_id=user_id)


if __name__ == "__main__":
    engine.bootstrap()
    try:
        pay(user_id=101, amount=1_000)
        pay(user_id=101, amount=5_000)
    except ValueError:
        pass
    finally:
        engine.on_lifecycle_end()
