"""Sample source adapters (probes).

- http: httpx-backed API probes (api_test, load_test, api_health, carrier_api)
- simulated: seeded radio probes (speed, signal, quality, coverage, roaming)
- router: routes each test to the probe registered for its kind
"""
