"""Experiment data service: cached loading plus channel queries for one format.

Every public method returns a :class:`~weld_rig_analyzer.models.results.ServiceResult`;
package errors and OS errors become failed results, anything unexpected is
logged with its traceback and wrapped the same way.
"""

from __future__ import annotations

from concurrent.futures import Executor
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from weld_rig_analyzer.analysis.resample import resample
from weld_rig_analyzer.analysis.stats import channel_statistics
from weld_rig_analyzer.exceptions import InvalidChannel, NotFound, ValidationError, WeldRigError
from weld_rig_analyzer.ingest.base import DEFAULT_LOG_CAP, ChannelReader
from weld_rig_analyzer.ingest.cancellation import CancellationToken
from weld_rig_analyzer.ingest.registry import FormatAdapter, get_format, list_formats
from weld_rig_analyzer.models.frames import Channel
from weld_rig_analyzer.models.results import ServiceResult
from weld_rig_analyzer.models.settings import AnalyzerSettings
from weld_rig_analyzer.services.cache import DEFAULT_TTL_S, ExperimentCache
from weld_rig_analyzer.services.filesystem import FileSystem, LocalFileSystem

logger = logging.getLogger(__name__)

DEFAULT_MAX_POINTS = 2000


class ExperimentDataService:
    """
    Query surface for one file format across all experiment folders.

    Parameters
    ----------
    root : str or Path
        Folder holding one sub-folder per experiment id.
    adapter : FormatAdapter
        Locator, reader factory and channel-id rules of the format.
    cache : ExperimentCache, optional
        Shared per-format cache; a private one with the default TTL otherwise.
    filesystem : FileSystem, optional
        Directory listing backend.
    """

    def __init__(
        self,
        root: str | Path,
        adapter: FormatAdapter,
        cache: Optional[ExperimentCache] = None,
        filesystem: Optional[FileSystem] = None,
        *,
        default_max_points: int = DEFAULT_MAX_POINTS,
        log_cap: int = DEFAULT_LOG_CAP,
    ):
        self.root = Path(root).expanduser()
        self.adapter = adapter
        self.cache = cache if cache is not None else ExperimentCache(DEFAULT_TTL_S)
        self.filesystem = filesystem if filesystem is not None else LocalFileSystem()
        self.default_max_points = int(default_max_points)
        self.log_cap = int(log_cap)

    @property
    def format_name(self) -> str:
        return self.adapter.name

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _guard(self, operation: str, experiment_id: Optional[str], fn: Callable[[], Any]) -> ServiceResult:
        try:
            data = fn()
        except (WeldRigError, OSError, ValueError) as e:
            logger.warning("%s %s(%s) failed: %s", self.format_name, operation, experiment_id, e)
            return ServiceResult.fail(e)
        except Exception as e:
            logger.exception("%s %s(%s): unexpected error", self.format_name, operation, experiment_id)
            return ServiceResult.fail(e, message=f"Unexpected error in {operation}")
        if isinstance(data, ServiceResult):
            return data
        return ServiceResult.ok(data)

    def experiment_dir(self, experiment_id: str) -> Path:
        d = self.root / experiment_id
        if not self.filesystem.is_dir(d):
            raise NotFound(f"Experiment folder not found: {experiment_id}")
        return d

    def find_file(self, experiment_id: str) -> Optional[Path]:
        """Source file of this format inside the experiment folder, or None."""
        folder = self.experiment_dir(experiment_id)
        return self.adapter.locate(self.filesystem.walk_files(folder), experiment_id)

    def _source_file(self, experiment_id: str) -> Path:
        path = self.find_file(experiment_id)
        if path is None:
            raise NotFound(f"No {self.format_name} file found for experiment {experiment_id}")
        return path

    def _reader(
        self,
        experiment_id: str,
        force_refresh: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> ChannelReader:
        def loader() -> ChannelReader:
            path = self._source_file(experiment_id)
            reader = self.adapter.reader_factory(path, log_cap=self.log_cap)
            reader.load(cancel)
            return reader

        return self.cache.get_or_load(experiment_id, loader, force_refresh=force_refresh)

    def _channel(self, reader: ChannelReader, channel_id: str) -> Channel:
        cid = self.adapter.normalize_channel_id(channel_id)
        if cid is None or not reader.has_channel(cid):
            raise InvalidChannel(str(channel_id), reader.available_channel_ids())
        return reader.channel(cid)

    def _channel_payload(
        self,
        reader: ChannelReader,
        channel_id: str,
        start_time: Optional[float],
        end_time: Optional[float],
        max_points: Optional[int],
    ) -> Dict[str, Any]:
        ch = self._channel(reader, channel_id)
        series = resample(
            ch,
            start=start_time,
            end=end_time,
            max_points=self.default_max_points if max_points is None else int(max_points),
            resolution_floor=self.adapter.resolution_floor(reader.data),
        )
        d = series.to_dict()
        d.update(label=ch.label, unit=ch.unit, sampling_rate=ch.sampling_rate)
        if ch.is_xy:
            d.update(x_label=ch.x_label, x_unit=ch.x_unit)
        return d

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def get_metadata(
        self,
        experiment_id: str,
        force_refresh: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> ServiceResult:
        def run() -> Dict[str, Any]:
            reader = self._reader(experiment_id, force_refresh, cancel)
            data = reader.data
            by_type: Dict[str, List[str]] = {}
            by_unit: Dict[str, List[str]] = {}
            for cid, ch in data.channels.items():
                by_type.setdefault(ch.kind, []).append(cid)
                by_unit.setdefault(ch.unit, []).append(cid)
            t0, t1 = reader.time_range()
            return {
                "experiment_id": experiment_id,
                "format": self.format_name,
                "file_info": {
                    "file_path": str(data.source_path),
                    "file_name": data.source_path.name,
                    "file_size": data.file_size,
                    "processed_at": data.processed_at.isoformat(),
                },
                "channels": {
                    "available": reader.available_channel_ids(),
                    "by_type": by_type,
                    "by_unit": by_unit,
                    "defaults": reader.default_display_channels(),
                    "details": {cid: ch.describe() for cid, ch in data.channels.items()},
                },
                "time_range": {"min": t0, "max": t1},
                "reader_metadata": reader.metadata(),
            }

        return self._guard("get_metadata", experiment_id, run)

    def get_channel_data(
        self,
        experiment_id: str,
        channel_id: str,
        start_time: Optional[float] = 0.0,
        end_time: Optional[float] = None,
        max_points: Optional[int] = None,
    ) -> ServiceResult:
        def run() -> Dict[str, Any]:
            reader = self._reader(experiment_id)
            d = self._channel_payload(reader, channel_id, start_time, end_time, max_points)
            d["experiment_id"] = experiment_id
            return d

        return self._guard("get_channel_data", experiment_id, run)

    def get_bulk_channel_data(
        self,
        experiment_id: str,
        channel_ids: Sequence[str],
        start_time: Optional[float] = 0.0,
        end_time: Optional[float] = None,
        max_points: Optional[int] = None,
    ) -> ServiceResult:
        """
        Resample several channels of one experiment.

        The experiment is loaded once. Each channel then succeeds or fails on
        its own; the result is successful as long as the load succeeded.
        """

        def run() -> ServiceResult:
            requested = list(dict.fromkeys(str(c) for c in channel_ids))
            if not requested:
                raise ValidationError("No channel ids requested")
            reader = self._reader(experiment_id)
            channels: Dict[str, Dict[str, Any]] = {}
            errors: List[Dict[str, str]] = []
            for cid in requested:
                try:
                    payload = self._channel_payload(reader, cid, start_time, end_time, max_points)
                except (WeldRigError, ValueError) as e:
                    channels[cid] = {"success": False, "error": str(e), "error_type": type(e).__name__}
                    errors.append({"channel_id": cid, "error": str(e)})
                    continue
                channels[cid] = {"success": True, "data": payload}

            ok = len(requested) - len(errors)
            data = {
                "experiment_id": experiment_id,
                "requested_channels": requested,
                "successful_channels": ok,
                "failed_channels": len(errors),
                "request_options": {
                    "start_time": start_time,
                    "end_time": end_time,
                    "max_points": self.default_max_points if max_points is None else int(max_points),
                },
                "channels": channels,
                "errors": errors,
            }
            return ServiceResult.ok(data, message=f"{ok}/{len(requested)} channels loaded")

        return self._guard("get_bulk_channel_data", experiment_id, run)

    def get_channel_statistics(self, experiment_id: str, channel_id: str) -> ServiceResult:
        def run() -> Dict[str, Any]:
            reader = self._reader(experiment_id)
            ch = self._channel(reader, channel_id)
            d = channel_statistics(ch).to_dict()
            d["experiment_id"] = experiment_id
            return d

        return self._guard("get_channel_statistics", experiment_id, run)

    def has_file(self, experiment_id: str) -> ServiceResult:
        """Whether the experiment folder holds a file of this format. A missing folder answers False."""

        def run() -> Dict[str, Any]:
            try:
                path = self.find_file(experiment_id)
            except NotFound:
                path = None
            return {
                "experiment_id": experiment_id,
                "format": self.format_name,
                "has_file": path is not None,
                "file_path": None if path is None else str(path),
            }

        return self._guard("has_file", experiment_id, run)

    def clear_cache(self, experiment_id: Optional[str] = None) -> ServiceResult:
        def run() -> ServiceResult:
            if experiment_id is None:
                n = self.cache.clear()
                return ServiceResult.ok({"cleared": n}, message=f"Cleared {n} cached experiments")
            removed = self.cache.invalidate(experiment_id)
            return ServiceResult.ok(
                {"cleared": int(removed), "experiment_id": experiment_id},
                message=f"Cache {'cleared' if removed else 'was empty'} for {experiment_id}",
            )

        return self._guard("clear_cache", experiment_id, run)

    def get_cache_status(self) -> ServiceResult:
        def run() -> Dict[str, Any]:
            d = self.cache.status()
            d["format"] = self.format_name
            return d

        return self._guard("get_cache_status", None, run)


def build_services(
    settings: AnalyzerSettings,
    filesystem: Optional[FileSystem] = None,
    executor: Optional[Executor] = None,
    formats: Optional[Sequence[str]] = None,
) -> Dict[str, ExperimentDataService]:
    """
    One ExperimentDataService per registered format, each with its own cache.

    Construct once per process and pass the services to request handlers.
    """
    if settings.root_path is None:
        raise ValueError("settings.root_path is required to build the data services")
    fs = filesystem if filesystem is not None else LocalFileSystem()
    services: Dict[str, ExperimentDataService] = {}
    for name in formats if formats is not None else list_formats():
        services[name] = ExperimentDataService(
            settings.root_path,
            get_format(name),
            ExperimentCache(settings.cache_ttl_s, executor=executor),
            fs,
            default_max_points=settings.default_max_points,
            log_cap=settings.log_capped_rows,
        )
    logger.info("Built data services for %s under %s", ", ".join(services), settings.root_path)
    return services
