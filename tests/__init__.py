"""teamplanner test suite (imported as the `tests` package so `tests._fake_*` helpers resolve)."""
