"""
Timelapse video rendering through a managed Remotion render function.

Starting a render returns the job id immediately; the client polls status at
a fixed interval and the server keeps no per-poll state.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError
from remotion_lambda import Privacy, RemotionClient, RenderMediaParams

from muzac.errors import UpstreamFailure, ValidationFailure
from muzac.storage import StorageClient

logger = logging.getLogger(__name__)

S3_URL_PATTERN = re.compile(r"^s3://([^/]+)/(.+)$")
FRAMES_PER_LAMBDA = 100
DEFAULT_REGION = "us-east-1"


@dataclass
class RenderProgress:
    done: bool
    overall_progress: float
    output_file: Optional[str] = None


@dataclass
class RenderJob:
    render_id: str
    bucket_name: str
    out_name: str

    def as_dict(self) -> dict:
        return {
            "renderId": self.render_id,
            "bucketName": self.bucket_name,
            "outName": self.out_name,
            "message": "Video rendering started",
        }


@dataclass
class RenderStatus:
    done: bool
    overall_progress: float
    output_file: Optional[str]

    def as_dict(self) -> dict:
        return {
            "done": self.done,
            "overallProgress": self.overall_progress,
            "outputFile": self.output_file,
        }


class RenderBackend(Protocol):
    """Operations the API needs from the render service."""

    def start(self, input_props: dict, out_name: str) -> str:
        ...

    def progress(self, render_id: str) -> RenderProgress:
        ...


class RemotionLambdaRenderer:
    """Drives the deployed Remotion render function through its Python client."""

    def __init__(
        self,
        *,
        function_name: str,
        serve_url: str,
        bucket: str,
        composition: str = "TimelapseVideo",
        region: Optional[str] = None,
        client: Optional[RemotionClient] = None,
    ):
        if not function_name or not serve_url:
            raise ValueError(
                "REMOTION_FUNCTION_NAME and REMOTION_SERVE_URL are required"
            )
        self.bucket = bucket
        self.composition = composition
        self._client = client or RemotionClient(
            region=region or DEFAULT_REGION,
            serve_url=serve_url,
            function_name=function_name,
        )

    def start(self, input_props: dict, out_name: str) -> str:
        params = RenderMediaParams(
            composition=self.composition,
            input_props=input_props,
            codec="h264",
            frames_per_lambda=FRAMES_PER_LAMBDA,
            bucket_name=self.bucket,
            privacy=Privacy.PRIVATE,
            download_behavior={"type": "download", "fileName": "video.mp4"},
            out_name=out_name,
        )
        try:
            response = self._client.render_media_on_lambda(params)
        except (BotoCoreError, ClientError, ValueError) as exc:
            raise UpstreamFailure(f"Render function rejected the render: {exc}") from exc
        if response is None:
            raise UpstreamFailure("Render function returned no render id")
        return response.render_id

    def progress(self, render_id: str) -> RenderProgress:
        try:
            progress = self._client.get_render_progress(
                render_id=render_id, bucket_name=self.bucket
            )
        except (BotoCoreError, ClientError, ValueError) as exc:
            raise UpstreamFailure(f"Render progress query failed: {exc}") from exc
        if progress is None:
            raise UpstreamFailure(f"No progress reported for render {render_id}")
        return RenderProgress(
            done=bool(getattr(progress, "done", False)),
            overall_progress=float(getattr(progress, "overallProgress", 0) or 0),
            output_file=getattr(progress, "outputFile", None),
        )


@dataclass
class InMemoryRenderer:
    """Test double: records render requests, progress is advanced by hand."""

    started: dict[str, dict] = field(default_factory=dict)
    renders: dict[str, RenderProgress] = field(default_factory=dict)
    fail_status: bool = False

    def start(self, input_props: dict, out_name: str) -> str:
        render_id = uuid.uuid4().hex[:10]
        self.started[render_id] = {"inputProps": input_props, "outName": out_name}
        self.renders[render_id] = RenderProgress(done=False, overall_progress=0.0)
        return render_id

    def progress(self, render_id: str) -> RenderProgress:
        if self.fail_status or render_id not in self.renders:
            raise UpstreamFailure(f"Unknown render {render_id}")
        return self.renders[render_id]

    def advance(
        self, render_id: str, overall_progress: float, output_file: Optional[str] = None
    ) -> None:
        self.renders[render_id] = RenderProgress(
            done=overall_progress >= 1,
            overall_progress=overall_progress,
            output_file=output_file,
        )

    def reset(self) -> None:
        self.started.clear()
        self.renders.clear()
        self.fail_status = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class VideoService:
    backend: RenderBackend
    storage: StorageClient
    bucket: str
    expires_in: int = 3600
    fallback_done: bool = True
    clock: Callable[[], datetime] = field(default=_utcnow)

    def start_render(self, user_sub: str, request: dict) -> RenderJob:
        if not request.get("images"):
            raise ValidationFailure("No images provided")

        out_name = f"{user_sub}/{int(self.clock().timestamp() * 1000)}.mp4"
        logger.info("Starting render for %s", out_name)
        render_id = self.backend.start(request, out_name)
        logger.info("Render started %s", render_id)
        return RenderJob(render_id=render_id, bucket_name=self.bucket, out_name=out_name)

    def poll_render_status(
        self, render_id: str, out_name: Optional[str] = None
    ) -> RenderStatus:
        if not render_id:
            raise ValidationFailure("Render ID required")

        try:
            progress = self.backend.progress(render_id)
        except UpstreamFailure:
            if not self.fallback_done:
                raise
            logger.warning(
                "Render progress query failed for %s, reporting done", render_id,
                exc_info=True,
            )
            progress = RenderProgress(
                done=True,
                overall_progress=1,
                output_file=f"s3://{self.bucket}/renders/{render_id}/{out_name}",
            )

        output_file = None
        if progress.done:
            output_file = self._output_url(render_id, out_name, progress.output_file)
        return RenderStatus(
            done=progress.done,
            overall_progress=progress.overall_progress,
            output_file=output_file,
        )

    def _output_url(
        self, render_id: str, out_name: Optional[str], reported: Optional[str]
    ) -> Optional[str]:
        if out_name:
            return self.storage.presign_get(
                f"renders/{render_id}/{out_name}",
                expires_in=self.expires_in,
                bucket=self.bucket,
            )
        match = S3_URL_PATTERN.match(reported or "")
        if not match:
            return None
        bucket, key = match.groups()
        return self.storage.presign_get(key, expires_in=self.expires_in, bucket=bucket)
