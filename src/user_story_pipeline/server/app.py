"""FastAPI app factory.

The webhook endpoint is a thin wrapper over the pipeline: it verifies the
delivery, resolves the trigger and runs the pipeline. Runs are serialized
through a process-wide lock because the committer may force-push the branch.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import threading

from fastapi import FastAPI, Header, HTTPException, Request, Response
from starlette.concurrency import run_in_threadpool

from user_story_pipeline import __version__
from user_story_pipeline.pipeline.appender import StoryAppender, create_appender
from user_story_pipeline.pipeline.committer import ChangeCommitter
from user_story_pipeline.pipeline.config import PipelineSettings
from user_story_pipeline.pipeline.errors import PipelineError, TriggerValidationError
from user_story_pipeline.pipeline.models import Invocation
from user_story_pipeline.pipeline.runner import PipelineResult, run_pipeline
from user_story_pipeline.pipeline.trigger import resolve_event
from user_story_pipeline.server.models import WebhookResponse

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Check a GitHub `X-Hub-Signature-256` header against the raw body."""

    if not signature.startswith(SIGNATURE_PREFIX):
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature[len(SIGNATURE_PREFIX) :], expected)


def create_app(
    settings: PipelineSettings | None = None,
    *,
    appender: StoryAppender | None = None,
    committer: ChangeCommitter | None = None,
) -> FastAPI:
    settings = settings or PipelineSettings()
    story_appender = appender or create_appender(settings)
    change_committer = committer or ChangeCommitter.from_settings(settings)
    run_lock = threading.Lock()

    app = FastAPI(
        title="User Story Pipeline",
        version=__version__,
        description="Webhook receiver that appends labeled issues to the user stories document.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )
    app.state.settings = settings

    def _run_serialized(invocation: Invocation) -> PipelineResult:
        with run_lock:
            return run_pipeline(invocation, appender=story_appender, committer=change_committer)

    @app.get("/api/v1/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/v1/webhooks/github", response_model=WebhookResponse)
    async def github_webhook(
        request: Request,
        response: Response,
        x_github_event: str = Header(default=""),
        x_hub_signature_256: str = Header(default=""),
    ) -> WebhookResponse:
        body = await request.body()

        if settings.webhook_secret and not verify_signature(
            settings.webhook_secret, body, x_hub_signature_256
        ):
            logger.warning(
                "Rejected webhook with invalid signature", extra={"event": x_github_event}
            )
            raise HTTPException(status_code=401, detail="Invalid signature")

        if not x_github_event:
            raise HTTPException(status_code=400, detail="Missing X-GitHub-Event header")

        try:
            payload = json.loads(body or b"{}")
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise HTTPException(status_code=400, detail="Payload is not valid JSON") from e
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Payload must be a JSON object")

        try:
            invocation = resolve_event(x_github_event, payload, settings)
        except TriggerValidationError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e

        if invocation is None:
            response.status_code = 202
            return WebhookResponse(status="skipped", event=x_github_event)

        try:
            result = await run_in_threadpool(_run_serialized, invocation)
        except PipelineError as e:
            logger.error(
                "Pipeline failed",
                extra={"issue_number": invocation.record.issue_number, "error": str(e)},
            )
            raise HTTPException(status_code=500, detail=str(e)) from e

        return WebhookResponse(
            status="appended",
            event=x_github_event,
            issue_number=result.issue_number,
            committed=result.committed,
            commit_sha=result.commit.commit_sha if result.commit is not None else None,
        )

    return app
