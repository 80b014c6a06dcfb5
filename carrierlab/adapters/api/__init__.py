"""HTTP JSON API for requesting and inspecting tests.

- receiver: maps request payloads onto TestManagementPort
- http_server: stdlib http.server front-end running beside the event loop
"""
