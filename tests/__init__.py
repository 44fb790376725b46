"""
Test harness for the data access layer and link health cache.

TEST AXIOMS:
=============
1. No real network, no real waiting: clock, sleep and I/O are injected
2. Failures surface as data in FetchState or LinkVerdict
3. Each scenario runs on its own event loop
"""
