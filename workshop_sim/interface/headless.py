"""
Headless runner for the workshop simulation.

Provides JSON I/O interface for programmatic control.
Input: JSON commands via stdin, one object per line
Output: JSON events and results via stdout, one object per line

Time runs on a simulated clock: delayed events only fire when an
``advance`` command moves it forward. This makes sessions scriptable and
reproducible (pass a seed for a deterministic random source).
"""

import json
import logging
import math
import random
import sys
from typing import Any, TextIO

from ..engine import WorkshopSimulation
from ..scenario.catalog import ScenarioCatalog
from ..state.event_bus import DismissEvent, SimEvent, Topic
from ..state.store import StatePersistence
from ..systems.scheduler import SimulatedScheduler
from .config import Config

logger = logging.getLogger(__name__)


class HeadlessRunner:
    """
    Headless simulation runner with JSON I/O.

    Commands are read from stdin as JSON objects.
    Events and responses are written to stdout as JSON.
    """

    def __init__(
        self,
        simulation: WorkshopSimulation,
        output: TextIO = sys.stdout,
    ):
        self.simulation = simulation
        self.output = output
        self.clock = simulation.scheduler
        self._subscribe_to_events()

    @classmethod
    def from_config(cls, config: Config, seed: int | None = None, output: TextIO = sys.stdout):
        sim = WorkshopSimulation.from_config(
            config,
            scheduler=SimulatedScheduler(),
            rng=random.Random(seed),
        )
        return cls(sim, output=output)

    @classmethod
    def from_catalog(
        cls,
        catalog: ScenarioCatalog,
        persistence: StatePersistence | None = None,
        seed: int | None = None,
        output: TextIO = sys.stdout,
    ):
        sim = WorkshopSimulation(
            catalog,
            persistence=persistence,
            scheduler=SimulatedScheduler(),
            rng=random.Random(seed),
        )
        return cls(sim, output=output)

    def _subscribe_to_events(self):
        """Subscribe to all topics and emit them as JSON."""
        for topic in Topic:
            self.simulation.bus.on(topic, self._emit_event)

    def _emit_event(self, event: SimEvent):
        """Emit a bus event as JSON to stdout."""
        self._write_json({
            "type": "event",
            "topic": event.topic.value,
            "payload": event.payload_dict(),
            "timestamp": event.timestamp.isoformat(),
        })

    def _write_json(self, obj: dict):
        """Write a JSON object to output followed by newline."""
        json.dump(obj, self.output, default=str)
        self.output.write("\n")
        self.output.flush()

    def _emit_response(self, response_type: str, **data):
        self._write_json({
            "type": response_type,
            **data,
        })

    def handle_command(self, cmd: dict) -> dict:
        """
        Handle a JSON command.

        Commands:
            {"cmd": "status"} - Session summary
            {"cmd": "state"} - Full state tree
            {"cmd": "start"} - Enter the current phase (fires entry events)
            {"cmd": "decide", "decision_id": "...", "choice_id": "..."}
            {"cmd": "choose", "event_id": "...", "choice_id": "..."}
            {"cmd": "dismiss", "event_id": "..."}
            {"cmd": "navigate", "phase": "..."}
            {"cmd": "next"} / {"cmd": "previous"}
            {"cmd": "timer_expired", "phase": "..."} - phase defaults to current
            {"cmd": "advance", "ms": 1000} - Move the simulated clock
            {"cmd": "outcomes"}
            {"cmd": "save"} / {"cmd": "reset"}
            {"cmd": "quit"}

        Returns:
            Response dict
        """
        cmd_type = cmd.get("cmd", "")
        sim = self.simulation

        if cmd_type == "status":
            return {"ok": True, **sim.status()}
        elif cmd_type == "state":
            return {"ok": True, "state": sim.store.snapshot()}
        elif cmd_type == "start":
            return self._navigation(sim.start())
        elif cmd_type == "decide":
            return self._cmd_decide(cmd.get("decision_id", ""), cmd.get("choice_id", ""))
        elif cmd_type == "choose":
            return self._cmd_choose(cmd.get("event_id", ""), cmd.get("choice_id", ""))
        elif cmd_type == "dismiss":
            return self._cmd_dismiss(cmd.get("event_id", ""))
        elif cmd_type == "navigate":
            return self._navigation(sim.phases.navigate_to_phase(cmd.get("phase", "")))
        elif cmd_type == "next":
            return self._navigation(sim.phases.navigate_to_next_phase())
        elif cmd_type == "previous":
            return self._navigation(sim.phases.navigate_to_previous_phase())
        elif cmd_type == "timer_expired":
            sim.expire_timer(cmd.get("phase"))
            return {"ok": True, "resources": sim.store.resources()}
        elif cmd_type == "advance":
            return self._cmd_advance(cmd.get("ms", 0))
        elif cmd_type == "outcomes":
            return {"ok": True, "outcomes": sim.outcomes().model_dump()}
        elif cmd_type == "save":
            return {"ok": sim.store.save()}
        elif cmd_type == "reset":
            sim.reset(preserve_user=bool(cmd.get("preserve_user", False)))
            return {"ok": True}
        elif cmd_type == "quit":
            return {"ok": True, "action": "quit"}
        else:
            return {"ok": False, "error": f"Unknown command: {cmd_type}"}

    def _cmd_decide(self, decision_id: str, choice_id: str) -> dict:
        result = self.simulation.rules.process_decision(decision_id, choice_id)
        if result is None:
            return {"ok": False, "error": f"Unknown decision or choice: {decision_id}/{choice_id}"}
        return {"ok": True, "effects": result.model_dump(mode="json")}

    def _cmd_choose(self, event_id: str, choice_id: str) -> dict:
        result = self.simulation.events.handle_event_choice(event_id, choice_id)
        if result is None:
            return {"ok": False, "error": f"Event not active or unknown choice: {event_id}/{choice_id}"}
        return {
            "ok": True,
            "effects": result.model_dump(mode="json"),
            "active_event": self.simulation.events.active_event_id,
        }

    def _cmd_dismiss(self, event_id: str) -> dict:
        if self.simulation.events.active_event_id != event_id:
            return {"ok": False, "error": f"Event not active: {event_id}"}
        self.simulation.bus.publish(Topic.DISMISS_EVENT, DismissEvent(event_id=event_id))
        return {"ok": True, "active_event": self.simulation.events.active_event_id}

    def _cmd_advance(self, ms: Any) -> dict:
        if not isinstance(self.clock, SimulatedScheduler):
            return {"ok": False, "error": "Clock is not simulated"}
        try:
            ms = float(ms)
        except (TypeError, ValueError):
            return {"ok": False, "error": f"Invalid ms: {ms!r}"}
        if not math.isfinite(ms) or ms < 0:
            return {"ok": False, "error": f"ms must be a finite, non-negative number: {ms!r}"}
        fired = self.clock.advance(ms)
        return {"ok": True, "fired": fired, "now_ms": self.clock.now_ms}

    @staticmethod
    def _navigation(result) -> dict:
        return result.model_dump(mode="json")

    def run(self, input_stream: TextIO = sys.stdin):
        """
        Main loop: read JSON commands, write responses.

        One JSON object per line. Exit on EOF or quit command.
        """
        self.simulation.initialize()
        self._emit_response(
            "ready",
            scenario=self.simulation.catalog.title,
            phase=self.simulation.store.current_phase,
        )

        for line in input_stream:
            line = line.strip()
            if not line:
                continue

            try:
                cmd = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("Ignoring invalid JSON command: %s", e)
                self._emit_response("error", error=f"Invalid JSON: {e}")
                continue

            if not isinstance(cmd, dict):
                self._emit_response("error", error="Command must be a JSON object")
                continue

            result = self.handle_command(cmd)
            self._emit_response("result", **result)

            if result.get("action") == "quit":
                break


def run_headless(config: Config, seed: int | None = None):
    """Entry point for headless mode."""
    runner = HeadlessRunner.from_config(config, seed=seed)
    try:
        runner.run()
    finally:
        runner.simulation.close()
        logger.info("Headless session ended")
