# FILE: blender_agent/integrations/flows.py
"""
Provider-specific asset flows.

Each flow only knows the addon command names and reply shapes of its
upstream; it receives the transport's send() and never touches the socket.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from blender_agent import config
from blender_agent.agent.progress import ProgressTracker
from blender_agent.errors import ProviderError, ProviderTimeoutError
from blender_agent.integrations.intent import AssetIntent, AssetKind, AssetProvider, extract_keywords

logger = logging.getLogger(__name__)

SendFn = Callable[..., Awaitable[Any]]


@dataclass
class ImportedAsset:
    name: str
    provider: str
    asset_kind: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


class AssetFlow:
    provider: AssetProvider = AssetProvider.NONE

    def __init__(self, send: SendFn):
        self._send = send

    async def run(self, intent: AssetIntent, progress: Optional[ProgressTracker] = None) -> ImportedAsset:
        raise NotImplementedError

    def _fail(self, message: str, **kwargs: Any) -> ProviderError:
        return ProviderError(self.provider.value, message, **kwargs)


# ============================================================================
# POLYHAVEN (free textures / HDRIs / models)
# ============================================================================

class PolyHavenFlow(AssetFlow):
    provider = AssetProvider.POLYHAVEN

    async def run(self, intent: AssetIntent, progress: Optional[ProgressTracker] = None) -> ImportedAsset:
        asset_type = intent.asset_kind.value
        categories = ",".join(extract_keywords(intent.query))
        if not categories:
            raise self._fail(f'No valid keywords to search for in query: "{intent.query}"')

        search = await self._send("search_polyhaven_assets", {"asset_type": asset_type, "categories": categories})
        assets = (search or {}).get("assets") if isinstance(search, dict) else None
        if not assets:
            raise self._fail(f"No PolyHaven assets found for categories: {categories}")

        asset_id = next(iter(assets)) if isinstance(assets, dict) else str(assets[0])
        if progress:
            progress.add("polyhaven_download", f"Downloading PolyHaven {asset_type[:-1]} '{asset_id}'")

        reply = await self._send(
            "download_polyhaven_asset",
            {
                "asset_id": asset_id,
                "asset_type": asset_type,
                "resolution": "1k",
                "file_format": "hdr" if intent.asset_kind == AssetKind.HDRI else "gltf",
            },
        )
        if not isinstance(reply, dict) or not reply.get("success"):
            error = reply.get("error") if isinstance(reply, dict) else reply
            raise self._fail(f"Failed to import PolyHaven asset: {error}")

        imported = reply.get("imported_objects") or []
        name = (imported[0] if imported else None) or reply.get("material_name") or reply.get("image_name") or asset_id
        return ImportedAsset(name=str(name), provider=self.provider.value, asset_kind=asset_type)


# ============================================================================
# SKETCHFAB (curated catalogue)
# ============================================================================

class SketchfabFlow(AssetFlow):
    provider = AssetProvider.SKETCHFAB

    @staticmethod
    def _first_downloadable(results: List[Any]) -> Optional[dict]:
        for hit in results:
            if not isinstance(hit, dict) or not hit.get("uid"):
                continue
            if hit.get("isDownloadable") is False:
                continue
            return hit
        return None

    async def run(self, intent: AssetIntent, progress: Optional[ProgressTracker] = None) -> ImportedAsset:
        query = intent.query.strip()
        search = await self._send("search_sketchfab_models", {"query": query})
        results = search.get("results") if isinstance(search, dict) else None
        hit = self._first_downloadable(results or [])
        if hit is None:
            raise self._fail(f'No downloadable models found on Sketchfab for query: "{query}"')

        if progress:
            progress.add("sketchfab_download", f"Downloading Sketchfab model '{hit.get('name') or hit['uid']}'")

        reply = await self._send("download_sketchfab_model", {"uid": hit["uid"]})
        imported = reply.get("imported_objects") if isinstance(reply, dict) else None
        if not isinstance(reply, dict) or not reply.get("success") or not imported:
            error = reply.get("error") if isinstance(reply, dict) else reply
            raise self._fail(f"Failed to import Sketchfab model: {error or 'Unknown error'}")

        return ImportedAsset(name=str(imported[0]), provider=self.provider.value, asset_kind=AssetKind.MODEL.value)


# ============================================================================
# HYPER3D RODIN (generation with polling)
# ============================================================================

_TRIAL_LIMIT_RE = re.compile(
    r"trial|free[\s_-]?tier|quota|insufficient\s+(credit|balance)|limit\s+(reached|exceeded)",
    re.IGNORECASE,
)


_TERMINAL_FAILURES = ("failed", "error", "cancelled", "canceled")


def is_trial_limit_message(message: Any) -> bool:
    return bool(message) and bool(_TRIAL_LIMIT_RE.search(str(message)))


class Hyper3DFlow(AssetFlow):
    """
    Two reply dialects exist depending on the addon's Rodin mode:
    - main site: {jobs: {subscription_key}, uuid}; poll status_list until all "Done"
    - fal.ai:    {request_id}; poll status until "succeeded"/"completed"
    """

    provider = AssetProvider.HYPER3D

    def __init__(
        self,
        send: SendFn,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(send)
        self.poll_interval = poll_interval if poll_interval is not None else config.HYPER3D_POLL_INTERVAL
        self.timeout = timeout if timeout is not None else config.HYPER3D_TIMEOUT
        self._sleep = sleep
        self._clock = clock

    def _raise_upstream(self, message: Any, stage: str) -> None:
        text = str(message)
        if is_trial_limit_message(text):
            raise self._fail(f"Hyper3D trial limit reached: {text}", sub_kind="trial_limit")
        raise self._fail(f"Hyper3D {stage} failed: {text}")

    async def run(
        self,
        intent: AssetIntent,
        progress: Optional[ProgressTracker] = None,
        images: Optional[List[str]] = None,
    ) -> ImportedAsset:
        params: Dict[str, Any] = {"images": images} if images else {"text_prompt": intent.query}
        job = await self._send("create_rodin_job", params)
        if not isinstance(job, dict):
            raise self._fail(f"Unexpected Hyper3D job reply: {job!r}")
        if job.get("error"):
            self._raise_upstream(job["error"], "job creation")

        subscription_key = (job.get("jobs") or {}).get("subscription_key") or job.get("subscription_key")
        task_uuid = job.get("uuid") or job.get("task_uuid")
        request_id = job.get("request_id")

        if subscription_key and task_uuid:
            await self._poll({"subscription_key": subscription_key}, progress)
            import_params = {"task_uuid": task_uuid, "name": intent.query}
        elif request_id:
            await self._poll({"request_id": request_id}, progress)
            import_params = {"request_id": request_id, "name": intent.query}
        else:
            raise self._fail(f"Addon did not return valid job identifiers: {job}")

        reply = await self._send("import_generated_asset", import_params)
        if not isinstance(reply, dict) or not reply.get("succeed") or not reply.get("name"):
            error = reply.get("error") if isinstance(reply, dict) else reply
            raise self._fail(f"Failed to import Hyper3D asset: {error}")

        return ImportedAsset(name=str(reply["name"]), provider=self.provider.value, asset_kind=AssetKind.MODEL.value)

    async def _poll(self, identifier: Dict[str, str], progress: Optional[ProgressTracker]) -> None:
        started = self._clock()
        if progress:
            progress.add("hyper3d_poll_start", "Polling Hyper3D job")

        while self._clock() - started < self.timeout:
            status = await self._send("poll_rodin_job_status", identifier)
            if not isinstance(status, dict):
                logger.warning("[hyper3d] unknown status reply: %r", status)
            elif status.get("error"):
                self._raise_upstream(status["error"], "job")
            elif isinstance(status.get("status_list"), list):
                states = [str(s) for s in status["status_list"]]
                if states and all(s == "Done" for s in states):
                    if progress:
                        progress.merge("hyper3d_poll_start", message="Hyper3D job succeeded")
                    return
                failed = [s for s in states if s.lower() in _TERMINAL_FAILURES or is_trial_limit_message(s)]
                if failed:
                    self._raise_upstream(status.get("message") or failed[0], "job")
                if progress:
                    progress.merge("hyper3d_poll_wait", message="Hyper3D job running", data={"status": states})
            elif status.get("status"):
                state = str(status["status"]).lower()
                if state in ("succeeded", "completed"):
                    if progress:
                        progress.merge("hyper3d_poll_start", message="Hyper3D job succeeded")
                    return
                if state in _TERMINAL_FAILURES or is_trial_limit_message(state):
                    self._raise_upstream(status.get("message") or status["status"], "job")
                if progress:
                    progress.merge("hyper3d_poll_wait", message="Hyper3D job running", data={"status": state})
            else:
                logger.warning("[hyper3d] unknown status format: %s", status)

            await self._sleep(self.poll_interval)

        raise ProviderTimeoutError(
            self.provider.value,
            f"Hyper3D job did not finish within {self.timeout:g}s",
        )


__all__ = [
    "ImportedAsset",
    "AssetFlow",
    "PolyHavenFlow",
    "SketchfabFlow",
    "Hyper3DFlow",
    "is_trial_limit_message",
]
