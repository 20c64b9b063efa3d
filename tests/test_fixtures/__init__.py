"""Controllable fakes and factories shared by the test suite."""
