#!/usr/bin/env python3
"""
Panograph Simulator - Walk through panorama sequences from the keyboard

Loads a JSON file of point records and lets you turn and step through them
the way a headset viewer would.
"""

import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from panograph import (
    IncrementalIndex, NavigationSession, Logger
)
from panograph.__main__ import load_records
from panograph.geo import bearing_to_compass, relative_direction


class PanoramaSimulator:
    """Simulate a viewer for testing"""

    def __init__(self, log_path: str = None):
        self.logger = Logger(log_path=log_path, echo=False)
        self.index = IncrementalIndex(config={"sequence_rebuild_debounce_ms": 0},
                                      logger=self.logger)
        self.session: NavigationSession = None

    def load(self, path: str) -> bool:
        """Load point records and start at the first point of the first sequence"""
        report = self.index.merge(load_records(path))
        self.index.flush()
        print(f"Loaded {len(self.index)} panoramas in {len(self.index.sequences())} sequences "
              f"({len(report.skipped)} skipped)")
        if len(self.index) == 0:
            print("No usable points")
            return False

        first = self.index.get_sequence_order(self.index.sequences()[0])[0]
        self.session = NavigationSession(self.index, start_id=first, on_event=self.on_event)
        return True

    def on_event(self, event):
        print(f"-> {type(event).__name__}: {event.from_id} -> {event.to_id}")

    def show_options(self):
        """Show where forward/back would go from here"""
        point = self.index.get_point(self.session.current_id)
        yaw = self.session.state.current_yaw
        heading = (yaw + self.index.config["yaw_offset_deg"]) % 360

        print(f"\nAt {point.id} ({point.lat:.6f}, {point.lon:.6f}) in {point.sequence_id}")
        print(f"Facing {heading:.0f} ({bearing_to_compass(heading)})"
              f"{', free-form' if self.session.free_form else ''}")

        result = self.session.options()
        for label, link in (("forward", result.forward), ("back", result.backward)):
            if link is None:
                print(f"  {label:8} -> dead end")
                continue
            rel = relative_direction(heading, link.bearing)
            print(f"  {label:8} -> {link.to_id} ({rel}, {link.distance:.0f}m)")

        nearby = self.index.nearby_links(point.id, limit=3)
        if nearby:
            names = ", ".join(f"{l.to_id} {l.distance:.0f}m" for l in nearby)
            print(f"  nearby: {names}")

    def run_interactive(self):
        """Run interactive simulation"""
        print("\n=== Panograph Simulator ===")
        print("Commands: 'f' forward, 'b' back, number = yaw in degrees, "
              "'j ID' jump, 'x' toggle free-form, 'q' quit")
        print()

        steps = 0
        while True:
            self.show_options()

            try:
                raw = input("\nChoice: ").strip()
            except EOFError:
                break

            cmd = raw.lower()
            if cmd == 'q':
                break
            elif cmd in ('f', 'b'):
                event = self.session.step("forward" if cmd == 'f' else "back")
                if event is None:
                    print("Dead end")
                else:
                    steps += 1
            elif cmd.startswith('j '):
                target = raw[2:].strip()
                if not self.session.jump_to(target):
                    target = self.index.find_by_image_ref(target)
                    if target is None or not self.session.jump_to(target):
                        print("Unknown point")
            elif cmd == 'x':
                self.session.free_form = not self.session.free_form
            else:
                try:
                    self.session.set_yaw(float(cmd))
                except ValueError:
                    print("Unknown command")

        print(f"\nSteps taken: {steps}")
        self.session.close()
        self.index.close()
        self.logger.close()


def main():
    if len(sys.argv) < 2:
        print(f"Usage: {sys.argv[0]} <points.json>")
        return 1

    sim = PanoramaSimulator()
    if sim.load(sys.argv[1]):
        sim.run_interactive()
    return 0


if __name__ == "__main__":
    exit(main())
