from __future__ import annotations
import argparse
import json

from ..config import CACHE_SECTIONS, ReplacementPolicyKind, SimConfig, WritePolicy
from ..errors import FaultKind, SimulatorException, simulator_exception
from ..isa.access import load_trace
from ..runtime.simulator import Simulator
from ..utils.logging import get_logger
from ..utils.reporting import EXIT_OK, exit_status, generate_report, report_fault


def cmd_run(args):
    """Handles the 'run' command."""
    try:
        config = SimConfig.from_args(args)
        get_logger("pyv-mem", config.log_level)
        if not config.trace:
            raise simulator_exception(FaultKind.INPUT, "No trace given",
                                      "Pass a trace file or set 'trace' in the config file")
        trace = load_trace(config.trace)
        sim = Simulator(config)
    except SimulatorException as e:
        return report_fault(e)

    print("--- Simulator Configuration ---")
    for section in CACHE_SECTIONS:
        print(f"{section}: {getattr(config, section)}")
    print("-----------------------------")

    # 1. Run simulation
    records, stats = sim.run(trace)

    # 2. Generate all reports
    generate_report(records, config, stats, sim.system)

    if sim.fault is None:
        print(f"[OK] Simulation finished. Reports are in {config.report_dir}")
    return exit_status(sim.fault)


def cmd_check_config(args):
    """Handles the 'check-config' command."""
    try:
        config = SimConfig.from_args(args)
    except SimulatorException as e:
        return report_fault(e)
    print(json.dumps({section: getattr(config, section).to_dict() for section in CACHE_SECTIONS},
                     indent=2))
    print(f"[OK] {args.config} is valid")
    return EXIT_OK


def _add_cache_arguments(parser, section: str):
    group = parser.add_argument_group(f'{section} Arguments')
    flag = f"--{section}"
    group.add_argument(f"{flag}-enabled", dest=f"{section}_enabled", default=None,
                       action=argparse.BooleanOptionalAction,
                       help=f"Enable or disable the {section}")
    group.add_argument(f"{flag}-sets", dest=f"{section}_set_count", type=int, default=None,
                       help="Number of sets (rows)")
    group.add_argument(f"{flag}-associativity", dest=f"{section}_associativity", type=int,
                       default=None, help="Number of ways per set")
    group.add_argument(f"{flag}-block-size", dest=f"{section}_block_size", type=int, default=None,
                       help="Block size in bytes")
    group.add_argument(f"{flag}-replacement-policy", dest=f"{section}_replacement_policy",
                       default=None, choices=[str(k) for k in ReplacementPolicyKind],
                       help="Replacement policy")
    group.add_argument(f"{flag}-write-policy", dest=f"{section}_write_policy", default=None,
                       choices=[str(w) for w in WritePolicy], help="Write policy")


def build_parser():
    p = argparse.ArgumentParser(
        prog="pyv-mem",
        description="PyV-Mem cache hierarchy simulator",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # --- Run Command ---
    pr = sub.add_parser("run", help="Replay an access trace through the caches",
                        formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    pr.add_argument("-c", "--config", type=str, default=None,
                    help="Path to YAML config file to override defaults")
    pr.add_argument("trace", nargs='?', default=None,
                    help="Path to access trace (optional if specified in config)")
    pr.add_argument("--report", type=str, default=None, dest="report_dir",
                    help="Directory to save simulation reports")
    pr.add_argument("--memory-size", type=int, default=None, dest="memory_size_bytes",
                    help="Main memory size in bytes")
    pr.add_argument("--log-level", type=str, default=None, dest="log_level",
                    choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level")
    for section in CACHE_SECTIONS:
        _add_cache_arguments(pr, section)
    pr.set_defaults(func=cmd_run)

    # --- Check-config Command ---
    pc = sub.add_parser("check-config", help="Validate a YAML config file",
                        formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    pc.add_argument("config", help="Path to YAML config file")
    pc.set_defaults(func=cmd_check_config)

    return p


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
