import pytest

from access_gate.errors import RateLimited
from access_gate.services import rate_limit
from access_gate.services.rate_limit import MemoryCounters, check_rate_ip


class FakeClock:
    def __init__(self):
        self.t = 1000.0

    def __call__(self):
        return self.t


def test_counters_reset_after_expiry():
    clock = FakeClock()
    counters = MemoryCounters(clock=clock)
    assert counters.incr('k') == 1
    counters.expire('k', 60)
    assert counters.incr('k') == 2

    clock.t += 61
    assert counters.incr('k') == 1


def test_expire_on_missing_key_is_a_noop():
    counters = MemoryCounters(clock=FakeClock())
    counters.expire('ghost', 60)
    assert counters.incr('ghost') == 1


def test_unreachable_redis_falls_back_to_memory(app):
    app.config.update(USE_REDIS=True, REDIS_URL='redis://127.0.0.1:1/0')
    app.extensions.pop('access_gate.rate_store', None)
    assert isinstance(rate_limit.r(), MemoryCounters)


def test_check_rate_ip_limits_per_ip(app):
    app.config['CHECK_RATE_LIMIT'] = 2
    check_rate_ip('10.1.1.1')
    check_rate_ip('10.1.1.1')
    with pytest.raises(RateLimited):
        check_rate_ip('10.1.1.1')
    check_rate_ip('10.1.1.2')
