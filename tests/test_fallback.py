import pytest
from datetime import datetime
from types import SimpleNamespace
from services.errors import OperationFailed
from services.fallback import first_successful, newest_first


def _record(id_, minute):
    return SimpleNamespace(id=id_, created_at=datetime(2024, 1, 1, 12, minute))


def test_first_tier_wins(app):
    calls = []
    result = first_successful([
        ('ordered', lambda: calls.append('ordered') or 'A'),
        ('unordered', lambda: calls.append('unordered') or 'B'),
    ], label='things')
    assert result == 'A'
    assert calls == ['ordered']


def test_falls_through_to_next_tier(app):
    failures = []

    def boom():
        raise KeyError('no index')

    result = first_successful([('ordered', boom), ('scan', lambda: 'B')],
                              label='things', errors=(KeyError,), on_failure=failures.append)
    assert result == 'B'
    assert len(failures) == 1


def test_all_tiers_fail_chains_cause(app):
    def boom():
        raise KeyError('last')

    with pytest.raises(OperationFailed) as exc:
        first_successful([('a', boom), ('b', boom)], label='things', errors=(KeyError,))
    assert str(exc.value) == 'Failed to load things'
    assert isinstance(exc.value.__cause__, KeyError)


def test_unexpected_errors_propagate(app):
    def boom():
        raise ValueError('bug')

    with pytest.raises(ValueError):
        first_successful([('a', boom), ('b', lambda: 'B')], label='things', errors=(KeyError,))


def test_newest_first_breaks_ties_by_id():
    records = [_record(1, 0), _record(3, 5), _record(2, 5), _record(4, 1)]
    assert [r.id for r in newest_first(records)] == [3, 2, 4, 1]
