"""
Real-time processing pipeline.

Coordinates packet decoding, filtering, windowing, and the two periodic
analysis engines (band power and heart rate).

The ingestion path (`ingest`) is synchronous and never waits on analysis.
It owns the decoder, the filter states and the window buffers. Every few
samples it copies a window into a one-slot mailbox; a worker task per engine
takes the request, computes in a thread, applies its smoothing state and
publishes an event on the results queue.
"""

import asyncio
import time
from collections import deque
from typing import Dict, Optional

import numpy as np

from biostream.acquisition.packet_decoder import PacketDecoder
from biostream.core.config import Settings, settings as default_settings
from biostream.core.exceptions import ConfigurationError, PipelineStateError
from biostream.core.logging import get_logger
from biostream.pipeline.messages import BandPowerEvent, HeartRateEvent, PipelineEvent
from biostream.signal_processing.buffer import WindowBuffer
from biostream.signal_processing.heart_rate import (
    BeatRequest,
    BpmSmoother,
    compute_bpm_stats,
)
from biostream.signal_processing.hrv import classify_state, compute_hrv
from biostream.signal_processing.preprocessing import ECG_CHANNEL, FilterChain
from biostream.signal_processing.spectral import (
    BandPowerSmoother,
    SpectralRequest,
    compute_band_fractions,
)

logger = get_logger(__name__)

SPECTRAL = "spectral"
HEART_RATE = "heart_rate"

# Recent computations kept per engine for latency averages
TIMING_HISTORY = 200


class RealtimePipeline:
    """
    Real-time EEG/ECG processing pipeline.

    Orchestrates the complete flow:
    Packets → Decoder → Filter Chain → Window Buffers → {Band Power, Heart Rate}

    Request policy: each engine has a single pending slot. When a new
    request is due while the previous one is still waiting, the waiting one
    is replaced (latest wins). A worker handles one request at a time.
    """

    def __init__(self, config: Optional[Settings] = None) -> None:
        """
        Initialize real-time pipeline.

        Args:
            config: Pipeline settings (default: global settings)
        """
        self.config = config or default_settings
        if self.config.n_channels <= ECG_CHANNEL:
            raise ConfigurationError(
                f"Need at least {ECG_CHANNEL + 1} channels (EEG0, EEG1, ECG), "
                f"got {self.config.n_channels}"
            )

        # Session state, created by start() and released by stop()
        self.decoder: Optional[PacketDecoder] = None
        self.filters: Optional[FilterChain] = None
        self.eeg_buffers: list[WindowBuffer] = []
        self.ecg_buffer: Optional[WindowBuffer] = None
        self._mailboxes: Dict[str, asyncio.Queue] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

        # Cadence counters
        self.spectral_counter = 0
        self.bpm_counter = 0

        # Results
        self.results: asyncio.Queue[PipelineEvent] = asyncio.Queue(
            maxsize=self.config.result_queue_size
        )

        # State
        self.is_running = False
        self.generation = 0
        self.session_start_time: Optional[float] = None
        self.sample_count = 0
        self.metrics = self._empty_metrics()

        logger.info(
            "realtime_pipeline_initialized",
            sample_rate=self.config.sample_rate,
            fft_size=self.config.fft_size,
            bpm_window=self.config.bpm_window_samples
        )

    @staticmethod
    def _empty_metrics() -> Dict:
        return {
            'spectral_requests': 0,
            'heart_rate_requests': 0,
            'dropped_requests': {SPECTRAL: 0, HEART_RATE: 0},
            'band_power_events': 0,
            'heart_rate_events': 0,
            'dropped_events': 0,
            'engine_errors': 0,
            'computation_time': {
                SPECTRAL: deque(maxlen=TIMING_HISTORY),
                HEART_RATE: deque(maxlen=TIMING_HISTORY),
            },
        }

    async def start(self) -> None:
        """Create per-session state and start the analysis workers."""
        if self.is_running:
            logger.warning("pipeline_already_running")
            return

        config = self.config
        self.generation += 1
        generation = self.generation

        self.decoder = PacketDecoder(n_channels=config.n_channels)
        self.filters = FilterChain(config)
        self.eeg_buffers = [WindowBuffer(config.fft_size) for _ in range(2)]
        self.ecg_buffer = WindowBuffer(config.bpm_window_samples)
        self.spectral_counter = 0
        self.bpm_counter = 0
        self.sample_count = 0
        self.metrics = self._empty_metrics()

        # Results from a previous session are stale
        while not self.results.empty():
            self.results.get_nowait()

        self._mailboxes = {
            SPECTRAL: asyncio.Queue(maxsize=1),
            HEART_RATE: asyncio.Queue(maxsize=1),
        }
        self._tasks = {
            SPECTRAL: asyncio.create_task(self._spectral_worker(
                generation,
                self._mailboxes[SPECTRAL],
                BandPowerSmoother(config.bands, history=config.band_history)
            )),
            HEART_RATE: asyncio.create_task(self._heart_rate_worker(
                generation,
                self._mailboxes[HEART_RATE],
                BpmSmoother(config.bpm_smoothing_window, config.bpm_max_step)
            )),
        }

        self.is_running = True
        self.session_start_time = time.time()

        logger.info("pipeline_started", generation=generation)

    async def stop(self) -> None:
        """Stop the workers and release all per-session state."""
        if not self.is_running:
            return

        self.is_running = False
        # Any result still in flight belongs to an older generation now
        self.generation += 1

        for task in self._tasks.values():
            task.cancel()
        for task in self._tasks.values():
            try:
                await task
            except asyncio.CancelledError:
                pass

        decoder_stats = self.decoder.stats if self.decoder else {}

        self._tasks = {}
        self._mailboxes = {}
        self.decoder = None
        self.filters = None
        self.eeg_buffers = []
        self.ecg_buffer = None

        logger.info(
            "pipeline_stopped",
            total_samples=self.sample_count,
            band_power_events=self.metrics['band_power_events'],
            heart_rate_events=self.metrics['heart_rate_events'],
            **decoder_stats
        )

    def ingest(self, payload: bytes) -> int:
        """
        Decode, filter and buffer one sensor payload.

        Must be called from the event loop thread. Never blocks on the
        analysis workers.

        Args:
            payload: Raw notification bytes

        Returns:
            Number of samples accepted (0 for a rejected payload)
        """
        if not self.is_running:
            raise PipelineStateError("Pipeline is not running")

        raw_samples = self.decoder.decode(payload)
        if not raw_samples:
            return 0

        eeg0, eeg1 = self.eeg_buffers
        ecg_buffer = self.ecg_buffer

        for sample in self.filters.process(raw_samples):
            eeg0.append(sample.eeg[0])
            eeg1.append(sample.eeg[1])
            ecg_buffer.append(sample.ecg)
            self.sample_count += 1

            self.spectral_counter = (self.spectral_counter + 1) % self.config.spectral_interval
            if self.spectral_counter == 0 and eeg0.is_full and eeg1.is_full:
                self._submit(SPECTRAL, SpectralRequest(
                    eeg0=eeg0.snapshot(),
                    eeg1=eeg1.snapshot(),
                    sample_rate=self.config.sample_rate,
                    fft_size=self.config.fft_size,
                    sample_index=sample.index
                ))

            self.bpm_counter = (self.bpm_counter + 1) % self.config.bpm_interval
            if self.bpm_counter == 0 and len(ecg_buffer) >= 3:
                self._submit(HEART_RATE, BeatRequest(
                    ecg=ecg_buffer.snapshot(),
                    sample_rate=self.config.sample_rate,
                    sample_index=sample.index
                ))

        return len(raw_samples)

    def _submit(self, engine: str, request) -> None:
        """Place a request in the engine's slot, replacing a stale one."""
        mailbox = self._mailboxes[engine]
        self.metrics[f'{engine}_requests'] += 1
        try:
            mailbox.put_nowait(request)
        except asyncio.QueueFull:
            mailbox.get_nowait()
            mailbox.put_nowait(request)
            self.metrics['dropped_requests'][engine] += 1
            logger.debug("stale_request_replaced", engine=engine)

    def _publish(self, event: PipelineEvent) -> None:
        """Queue an event for consumers, dropping the oldest when full."""
        try:
            self.results.put_nowait(event)
        except asyncio.QueueFull:
            self.results.get_nowait()
            self.results.put_nowait(event)
            self.metrics['dropped_events'] += 1

    async def _spectral_worker(
        self,
        generation: int,
        mailbox: asyncio.Queue,
        smoother: BandPowerSmoother
    ) -> None:
        """Band power worker loop."""
        bands = dict(self.config.bands)

        while True:
            request: SpectralRequest = await mailbox.get()
            t0 = time.time()
            try:
                fractions = await asyncio.to_thread(compute_band_fractions, request, bands)
            except Exception as e:
                self.metrics['engine_errors'] += 1
                logger.exception("spectral_computation_failed", error=str(e))
                continue

            if generation != self.generation:
                return

            smoothed = smoother.update(fractions)
            self.metrics['computation_time'][SPECTRAL].append(time.time() - t0)
            self.metrics['band_power_events'] += 1
            self._publish(BandPowerEvent(
                session=generation,
                sample_index=request.sample_index,
                ch0=smoothed['ch0'],
                ch1=smoothed['ch1']
            ))

    async def _heart_rate_worker(
        self,
        generation: int,
        mailbox: asyncio.Queue,
        smoother: BpmSmoother
    ) -> None:
        """Heart rate worker loop."""
        while True:
            request: BeatRequest = await mailbox.get()
            t0 = time.time()
            try:
                result = await asyncio.to_thread(
                    compute_bpm_stats, request.ecg, request.sample_rate
                )
            except Exception as e:
                self.metrics['engine_errors'] += 1
                logger.exception("heart_rate_computation_failed", error=str(e))
                continue

            if generation != self.generation:
                return

            displayed = smoother.update(result.bpm)
            hrv = compute_hrv(result.peaks, request.sample_rate)
            self.metrics['computation_time'][HEART_RATE].append(time.time() - t0)
            self.metrics['heart_rate_events'] += 1

            if not result.has_rate:
                logger.debug("heart_rate_unavailable", n_peaks=len(result.peaks))

            self._publish(HeartRateEvent(
                session=generation,
                sample_index=request.sample_index,
                result=result,
                displayed_bpm=displayed,
                hrv=hrv,
                state=classify_state(hrv)
            ))

    async def get_result(self, timeout: Optional[float] = None) -> Optional[PipelineEvent]:
        """
        Next published event.

        Args:
            timeout: Seconds to wait; None waits indefinitely

        Returns:
            Event, or None on timeout
        """
        try:
            return await asyncio.wait_for(self.results.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def get_metrics(self) -> Dict:
        """Get pipeline counters."""
        timing = self.metrics['computation_time']
        return {
            'total_samples_processed': self.sample_count,
            'spectral_requests': self.metrics['spectral_requests'],
            'heart_rate_requests': self.metrics['heart_rate_requests'],
            'dropped_requests': dict(self.metrics['dropped_requests']),
            'band_power_events': self.metrics['band_power_events'],
            'heart_rate_events': self.metrics['heart_rate_events'],
            'dropped_events': self.metrics['dropped_events'],
            'engine_errors': self.metrics['engine_errors'],
            'avg_spectral_ms': float(np.mean(timing[SPECTRAL]) * 1000) if timing[SPECTRAL] else 0.0,
            'avg_heart_rate_ms': float(np.mean(timing[HEART_RATE]) * 1000) if timing[HEART_RATE] else 0.0,
            **(self.decoder.stats if self.decoder else {}),
            'session_duration_s': time.time() - self.session_start_time if self.session_start_time else 0,
        }

    def get_current_state(self) -> Dict:
        """Get current pipeline state."""
        return {
            'is_running': self.is_running,
            'sample_count': self.sample_count,
            'metrics': self.get_metrics()
        }
