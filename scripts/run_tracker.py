"""Track a satellite with a rotctld rotator without the GUI.

Example:
    python scripts/run_tracker.py data/iss.tle 25544 myrotor
"""
import argparse
import logging
import time

from rotrack.config import load_qth
from rotrack.prop import SkyfieldPropagator, julian_now, load_satellites
from rotrack.rotor.controller import TrackingController

logger = logging.getLogger("run_tracker")


def main():
    ap = argparse.ArgumentParser(description="Track a satellite with a rotctld rotator")
    ap.add_argument("tle", help="TLE file (name + two lines, repeated)")
    ap.add_argument("catnum", type=int, help="catalog number of the satellite to track")
    ap.add_argument("rotor", help="rotator profile name from the config file")
    ap.add_argument("--monitor", action="store_true", help="read the rotator position only")
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ctrl = TrackingController(SkyfieldPropagator(), load_qth(), satellites=load_satellites(args.tle))
    if not ctrl.select_rotor(args.rotor):
        raise SystemExit(2)
    ctrl.update(julian_now())
    if not ctrl.select_target(args.catnum):
        raise SystemExit(2)

    ctrl.set_monitor(args.monitor)
    ctrl.set_tracking(True)
    ctrl.set_engaged(True)
    try:
        while True:
            ctrl.update(julian_now())
            res = ctrl.tick()
            rotor = "ERROR" if res.error else (
                "---" if res.rotor is None else f"{res.rotor[0]:7.2f} {res.rotor[1]:6.2f}"
            )
            cmd = "---" if res.display is None else f"{res.display[0]:7.2f} {res.display[1]:6.2f}"
            logger.info("%-10s cmd %s  rotor %s  dT %s", res.state, cmd, rotor, ctrl.countdown())
            time.sleep(ctrl.delay / 1000.0)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        ctrl.close()


if __name__ == "__main__":
    main()
