from __future__ import annotations

from datetime import datetime, timezone

import pytest

hypothesis = pytest.importorskip("hypothesis")
from hypothesis import given, settings, strategies as st

from rollfile.naming import DEFAULT_LAYOUT, backup_name, prefix_and_ext, time_from_name, truncate_fraction

_instants = st.datetimes(
    min_value=datetime(1970, 1, 2),
    max_value=datetime(2100, 1, 1),
    timezones=st.just(timezone.utc),
)


@settings(max_examples=200, deadline=None)
@given(instant=_instants, reason=st.sampled_from(["size", "time"]), after_ext=st.booleans())
def test_backup_name_decodes_to_millisecond_instant(instant, reason, after_ext):
    path = backup_name("/var/log/foobar.log", reason, instant, after_ext=after_ext)
    prefix, ext = prefix_and_ext("/var/log/foobar.log", after_ext)
    got = time_from_name(path.rsplit("/", 1)[1], prefix, ext, layout=DEFAULT_LAYOUT)
    assert got == truncate_fraction(instant, 3)


@settings(max_examples=100, deadline=None)
@given(instant=_instants, digits=st.integers(min_value=0, max_value=6))
def test_truncate_fraction_never_rounds_up(instant, digits):
    got = truncate_fraction(instant, digits)
    assert got <= instant
    assert (instant - got).total_seconds() < 10 ** -digits
