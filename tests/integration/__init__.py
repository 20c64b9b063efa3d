"""Integration tests: lifecycle manager, delivery queue and session store together."""
