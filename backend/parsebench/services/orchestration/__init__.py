"""Service orchestration layer: coordinates multi-service workflows.

Modules:
- provider_pipeline: runs one document through one provider (prepare, adapter, normalize, inline, account).
- benchmark_service: fans one document out to several providers concurrently.
"""
