from window_chain.exceptions import (
    AllStrategiesExhausted,
    BackendFailure,
    ErrorCategory,
    InvalidInput,
    OperationTimeout,
)


def test_wrap_keeps_library_errors():
    error = InvalidInput("bad")
    assert BackendFailure.wrap(error) is error


def test_wrap_raw_exception():
    raw = KeyError()
    wrapped = BackendFailure.wrap(raw, backend="primary")

    assert isinstance(wrapped, BackendFailure)
    assert wrapped.message == "KeyError"
    assert wrapped.backend == "primary"
    assert wrapped.original_error is raw


def test_exhausted_uses_original_message():
    original = OperationTimeout(10.0, backend="primary")
    error = AllStrategiesExhausted(original, {"retry": "down", "degrade": "down"})

    assert str(error) == "Operation timeout after 10s"
    assert error.category is ErrorCategory.STRATEGIES_EXHAUSTED
    assert error.details["original_category"] == "timeout"
    assert error.details["attempted_strategies"] == ["retry", "degrade"]


def test_to_dict():
    data = InvalidInput("bad").to_dict()
    assert data["error"] == "InvalidInput"
    assert data["category"] == "invalid_input"
    assert data["message"] == "bad"
    assert "timestamp" in data
