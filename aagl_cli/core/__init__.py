"""
Core update engine.

This package contains the primary logic. The `UpdateOrchestrator` drives the
whole run, resolving targets with the pure functions of `resolver`, reading the
installation through `InstalledStateInspector` and skipping finished work with
the `DownloadCompletionChecker`.
"""
