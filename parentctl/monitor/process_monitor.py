"""Process monitor: the periodic enumerate-and-enforce loop.

A single background thread runs a tick, waits `poll_interval` after it
finishes (fixed delay, so ticks never overlap), and repeats until stopped.

Each tick:
1. Snapshots the current time and all live processes
2. Under the rule-list lock, matches every enabled rule against every process
3. Asks the enforcement policy what to do, accruing usage for limited rules
4. Terminates violators (graceful request, grace period, forced kill by name)

Usage is sampled, not intercepted: a process is charged the time between two
consecutive ticks that both saw it. A process whose whole lifetime falls
between two ticks is never charged and never blocked for its usage.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import psutil

from parentctl.models.events import EnforcementEvent, ProcessInfo, TerminationOutcome
from parentctl.models.rules import BlockRule, RuleMode, executable_basename
from parentctl.monitor.process_control import ProcessControl
from parentctl.policies.enforcement import Decision, block_reason, decide
from parentctl.policies.schedule import (
    add_usage,
    limit_reached,
    matches_executable,
    reset_usage_if_stale,
)

logger = logging.getLogger(__name__)


@dataclass
class MonitorConfig:
    """Configuration for the process monitor."""

    # Delay between the end of one tick and the start of the next (seconds)
    poll_interval: float = 2.0

    # Wait after a graceful terminate request before escalating (seconds)
    grace_period: float = 0.3

    # How long stop() waits for a running tick to finish (seconds)
    stop_timeout: float = 5.0


class ProcessMonitor:
    """Enforces BlockRules against live OS processes.

    Usage:
        monitor = ProcessMonitor(rule_book.rules, rule_book.lock)
        monitor.start()
        ...
        monitor.stop()
    """

    def __init__(
        self,
        rules: list[BlockRule],
        lock: Optional[threading.RLock] = None,
        control: Optional[ProcessControl] = None,
        config: Optional[MonitorConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
        listener: Optional[Callable[[EnforcementEvent], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the monitor.

        Args:
            rules: Rule list owned by the caller; only usage fields are mutated
            lock: Lock shared with every mutator of `rules`
            control: OS process collaborator
            config: Timing configuration
            clock: Source of the current local time
            listener: Called with each EnforcementEvent
            sleep: Used for the termination grace period
        """
        self.rules = rules
        self.lock = lock if lock is not None else threading.RLock()
        self.control = control if control is not None else ProcessControl()
        self.config = config if config is not None else MonitorConfig()
        self.listener = listener
        self._clock = clock
        self._sleep = sleep

        # (rule id, pid) -> last time the process was observed
        self._last_seen: dict[tuple[str, int], datetime] = {}

        self._state_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None

    @property
    def tracked(self) -> dict[tuple[str, int], datetime]:
        """Copy of the usage-tracking map."""
        with self.lock:
            return dict(self._last_seen)

    def start(self) -> None:
        """Start periodic ticks. No-op if already running."""
        with self._state_lock:
            if self._thread is not None:
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name="ProcessMonitor",
                daemon=True,
            )
            self._thread.start()
        logger.info(f"Process monitor started (interval={self.config.poll_interval}s)")

    def stop(self) -> None:
        """Cancel future ticks. A tick in progress is allowed to finish."""
        with self._state_lock:
            thread, stop_event = self._thread, self._stop_event
            if thread is None or stop_event is None:
                return
            self._thread = None
            self._stop_event = None
            stop_event.set()

        if thread is not threading.current_thread():
            thread.join(timeout=self.config.stop_timeout)
        logger.info("Process monitor stopped")

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Monitor error: {e}", exc_info=True)
            if stop_event.wait(self.config.poll_interval):
                break

    def tick(self) -> list[EnforcementEvent]:
        """Run one enumerate-and-enforce cycle.

        Returns:
            Termination events produced by this tick
        """
        now = self._clock()
        try:
            processes = self.control.snapshot()
        except (psutil.Error, OSError) as e:
            logger.warning(f"Process enumeration failed: {e}")
            return []

        events: list[EnforcementEvent] = []
        handled: set[int] = set()

        with self.lock:
            self._prune({proc.pid for proc in processes})

            for rule in list(self.rules):
                if rule.mode == RuleMode.DISABLED or not rule.is_actionable:
                    continue
                for proc in processes:
                    if proc.pid in handled:
                        continue
                    if not matches_executable(rule, proc.command_line):
                        continue
                    event = self._enforce(rule, proc, now)
                    if event is not None:
                        handled.add(proc.pid)
                        events.append(event)

        # Listeners run outside the rule lock
        for event in events:
            self._emit(event)
        return events

    def block_now(self, rule: Optional[BlockRule]) -> list[EnforcementEvent]:
        """Terminate every live process matching `rule`, ignoring schedule and usage.

        Args:
            rule: Rule whose matchers select the processes

        Returns:
            Termination events, one per matched process
        """
        if rule is None or not rule.is_actionable:
            return []

        try:
            processes = self.control.snapshot()
        except (psutil.Error, OSError) as e:
            logger.warning(f"Manual block failed for {rule.friendly_name}: {e}")
            return []

        events = [
            self._terminate(rule, proc, "blocked now")
            for proc in processes
            if matches_executable(rule, proc.command_line)
        ]
        for event in events:
            self._emit(event)
        return events

    def _enforce(self, rule: BlockRule, proc: ProcessInfo, now: datetime) -> Optional[EnforcementEvent]:
        """Apply the enforcement policy to one matched process."""
        reset_usage_if_stale(rule, now.date())
        decision = decide(rule, now)

        if decision == Decision.ALLOW:
            return None

        if decision == Decision.TRACK:
            self._track_usage(rule, proc.pid, now)
            if not limit_reached(rule):
                return None

        return self._terminate(rule, proc, block_reason(rule, now))

    def _track_usage(self, rule: BlockRule, pid: int, now: datetime) -> None:
        key = (rule.id, pid)
        previous = self._last_seen.get(key)
        self._last_seen[key] = now
        if previous is None:
            # First sighting contributes nothing
            return
        delta_ms = int((now - previous).total_seconds() * 1000)
        if delta_ms > 0:
            add_usage(rule, delta_ms, now.date())

    def _prune(self, live_pids: set[int]) -> None:
        for key in [key for key in self._last_seen if key[1] not in live_pids]:
            del self._last_seen[key]

    def _forget(self, pid: int) -> None:
        with self.lock:
            for key in [key for key in self._last_seen if key[1] == pid]:
                del self._last_seen[key]

    def _exe_name_for(self, rule: BlockRule, proc: ProcessInfo) -> str:
        if rule.exe_name and rule.exe_name.strip():
            return rule.exe_name.strip()
        if rule.exe_path and rule.exe_path.strip():
            return executable_basename(rule.exe_path)
        if proc.name:
            return proc.name
        return executable_basename(proc.command_line)

    def _terminate(self, rule: BlockRule, proc: ProcessInfo, reason: str) -> EnforcementEvent:
        """Graceful terminate, wait, then force-kill by name if still alive."""
        exe_name = self._exe_name_for(rule, proc)
        logger.info(f"Blocking {rule.friendly_name}: {exe_name} (pid={proc.pid}) - {reason}")

        try:
            self.control.terminate(proc.pid)
            self._sleep(self.config.grace_period)
            if not self.control.is_alive(proc.pid):
                outcome = TerminationOutcome.GRACEFUL
            elif self.control.kill_by_name(exe_name):
                outcome = TerminationOutcome.FORCED
            else:
                outcome = TerminationOutcome.FAILED
        except (psutil.Error, OSError) as e:
            logger.warning(f"Error terminating {exe_name} (pid={proc.pid}): {e}")
            outcome = TerminationOutcome.FAILED
        finally:
            self._forget(proc.pid)

        if outcome == TerminationOutcome.GRACEFUL:
            logger.info(f"Process terminated: {exe_name} pid={proc.pid}")
        elif outcome == TerminationOutcome.FORCED:
            logger.info(f"Process force-killed: {exe_name} pid={proc.pid}")
        else:
            logger.warning(
                f"Cannot terminate {exe_name} pid={proc.pid}; try running as administrator"
            )

        return EnforcementEvent(
            rule_id=rule.id,
            rule_name=rule.friendly_name,
            pid=proc.pid,
            exe_name=exe_name,
            command_line=proc.command_line,
            outcome=outcome,
            reason=reason,
        )

    def _emit(self, event: EnforcementEvent) -> None:
        if self.listener is None:
            return
        try:
            self.listener(event)
        except Exception as e:
            logger.warning(f"Enforcement listener failed: {e}")
