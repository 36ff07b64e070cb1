"""Asset upload orchestration."""

from linkedin_ads.orchestrator.upload_orchestrator import AssetUploadOrchestrator, plan_chunks

__all__ = ["AssetUploadOrchestrator", "plan_chunks"]
