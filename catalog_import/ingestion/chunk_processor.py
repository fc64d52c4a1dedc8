"""
Chunked Processing Engine
Splits a row set into memory-adaptive batches and drives a per-chunk handler.

Chunks run strictly in order. A handler exception aborts the run: it is
recorded in the chunk statistics and re-raised unchanged.
"""

import gc
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import psutil

from catalog_import.config.settings import ImportSettings, get_settings

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024

ChunkHandler = Callable[[List[Any]], Any]
ProgressCallback = Callable[[Dict[str, Any]], None]


def process_memory_bytes() -> int:
    """Resident set size of the current process."""
    return psutil.Process().memory_info().rss


@dataclass
class ChunkStats:
    """Diagnostics for one processed chunk."""

    chunk_index: int
    rows: int
    chunk_size: int
    duration_seconds: float
    memory_delta_bytes: int
    error: Optional[str] = None


class ChunkedProcessor:
    """
    Memory-aware chunk driver.

    Args:
        settings: Import settings (memory limit, chunk bounds, pressure threshold)
        memory_probe: Returns current memory usage in bytes
        checkpoint: Called before every chunk; raise from it to stop the run
    """

    def __init__(
        self,
        settings: Optional[ImportSettings] = None,
        memory_probe: Optional[Callable[[], int]] = None,
        checkpoint: Optional[Callable[[], None]] = None,
    ):
        self.settings = settings or get_settings()
        self.memory_probe = memory_probe or process_memory_bytes
        self.checkpoint = checkpoint

        self.chunk_stats: List[ChunkStats] = []
        self.chunk_sizes: List[int] = []
        self.result_cache: Dict[int, Any] = {}
        self.pressure_events = 0
        self.current_chunk_size: Optional[int] = None

    @property
    def memory_limit_bytes(self) -> int:
        return self.settings.memory_limit_mb * BYTES_PER_MB

    def calculate_chunk_size(self) -> int:
        """
        Chunk size from memory headroom.

        Headroom is 80% of the configured limit minus current usage; a chunk
        may take 10% of it at settings.estimated_row_bytes per row.
        """
        available = self.memory_limit_bytes * 0.8 - self.memory_probe()
        size = int(available * 0.1 / self.settings.estimated_row_bytes)
        return max(self.settings.min_chunk_size, min(self.settings.max_chunk_size, size))

    def process_in_chunks(
        self,
        rows: Sequence[Any],
        handler: ChunkHandler,
        on_progress: Optional[ProgressCallback] = None,
        chunk_size: Optional[int] = None,
    ) -> List[Any]:
        """
        Run handler over consecutive slices of rows.

        Args:
            rows: Materialized row sequence
            handler: Called with each chunk, returns that chunk's results
            on_progress: Called after each chunk with percent, processed_rows,
                total_rows, chunk_index and memory_usage (MB)
            chunk_size: Fixed starting size; computed from memory when None

        Returns:
            Handler results in chunk order
        """
        total_rows = len(rows)
        self.current_chunk_size = chunk_size or self.calculate_chunk_size()
        results: List[Any] = []
        processed = 0
        chunk_index = 0

        logger.info(f"Processing {total_rows} rows, starting chunk size {self.current_chunk_size}")

        while processed < total_rows:
            chunk = list(rows[processed : processed + self.current_chunk_size])
            results.append(self._run_chunk(chunk, chunk_index, handler))
            processed += len(chunk)

            self._report(on_progress, processed, total_rows, chunk_index)
            self._check_memory_pressure()
            chunk_index += 1

        logger.info(f"Processed {processed} rows in {chunk_index} chunk(s)")
        return results

    def process_stream(
        self,
        cursor: Iterable[Any],
        handler: ChunkHandler,
        on_progress: Optional[ProgressCallback] = None,
        batch_size: Optional[int] = None,
        total_rows: Optional[int] = None,
    ) -> List[Any]:
        """
        Streaming variant for forward-only cursors.

        Rows are buffered until the current batch size is reached. total_rows,
        when known, is only used for the progress percentage.
        """
        self.current_chunk_size = batch_size or self.calculate_chunk_size()
        results: List[Any] = []
        buffer: List[Any] = []
        processed = 0
        chunk_index = 0

        for row in cursor:
            buffer.append(row)
            if len(buffer) < self.current_chunk_size:
                continue

            results.append(self._run_chunk(buffer, chunk_index, handler))
            processed += len(buffer)
            buffer = []
            self._report(on_progress, processed, total_rows, chunk_index)
            self._check_memory_pressure()
            chunk_index += 1

        if buffer:
            results.append(self._run_chunk(buffer, chunk_index, handler))
            processed += len(buffer)
            self._report(on_progress, processed, total_rows, chunk_index)
            chunk_index += 1

        logger.info(f"Streamed {processed} rows in {chunk_index} chunk(s)")
        return results

    def _run_chunk(self, chunk: List[Any], chunk_index: int, handler: ChunkHandler) -> Any:
        if self.checkpoint is not None:
            self.checkpoint()

        gc.collect()
        self.chunk_sizes.append(len(chunk))

        memory_before = self.memory_probe()
        started = time.perf_counter()
        try:
            result = handler(chunk)
        except Exception as e:
            self.chunk_stats.append(
                ChunkStats(
                    chunk_index=chunk_index,
                    rows=len(chunk),
                    chunk_size=self.current_chunk_size,
                    duration_seconds=time.perf_counter() - started,
                    memory_delta_bytes=self.memory_probe() - memory_before,
                    error=str(e),
                )
            )
            logger.error(f"Chunk {chunk_index} failed after {len(chunk)} rows: {e}", exc_info=True)
            raise

        stats = ChunkStats(
            chunk_index=chunk_index,
            rows=len(chunk),
            chunk_size=self.current_chunk_size,
            duration_seconds=time.perf_counter() - started,
            memory_delta_bytes=self.memory_probe() - memory_before,
        )
        self.chunk_stats.append(stats)
        self.result_cache[chunk_index] = result

        logger.debug(
            f"Chunk {chunk_index}: {stats.rows} rows in {stats.duration_seconds:.2f}s, "
            f"memory delta {stats.memory_delta_bytes / BYTES_PER_MB:.1f} MB"
        )
        return result

    def _report(
        self,
        on_progress: Optional[ProgressCallback],
        processed: int,
        total_rows: Optional[int],
        chunk_index: int,
    ) -> None:
        if on_progress is None:
            return

        percent = round(processed / total_rows * 100, 2) if total_rows else None
        on_progress(
            {
                "percent": percent,
                "processed_rows": processed,
                "total_rows": total_rows,
                "chunk_index": chunk_index,
                "memory_usage": round(self.memory_probe() / BYTES_PER_MB, 2),
            }
        )

    def _check_memory_pressure(self) -> None:
        """Reclaim memory and shrink the remaining chunk size above the pressure threshold."""
        usage = self.memory_probe()
        if usage <= self.memory_limit_bytes * self.settings.memory_pressure_threshold:
            return

        self.pressure_events += 1
        gc.collect()
        self.result_cache.clear()

        previous = self.current_chunk_size
        self.current_chunk_size = max(
            self.settings.min_chunk_size, int(previous * self.settings.chunk_shrink_factor)
        )
        logger.warning(
            f"Memory pressure: {usage / BYTES_PER_MB:.1f} MB of {self.settings.memory_limit_mb} MB, "
            f"chunk size {previous} -> {self.current_chunk_size}"
        )
