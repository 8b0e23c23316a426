"""
Core application engine for orchestrating the update process.

The `UpdateOrchestrator` drives one sync run: it fetches the manifest, asks the
`IntegrityChecker` for the delta and hands each entry to the
`ThrottledDownloader`, publishing progress on an `EventStream`.
"""
