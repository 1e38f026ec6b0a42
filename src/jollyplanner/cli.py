"""Command-line interface for the Jolly floater planner."""

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional

from jollyplanner.config import CPSATConfig, OptimizerConfig
from jollyplanner.domain.distance import StaticDistanceTable
from jollyplanner.domain.models import (
    AbsenceStatus,
    AbsenceType,
    ContractType,
    Employee,
    LeaveRequest,
    Role,
    SicknessRecord,
    SiteAssignment,
    SiteStatus,
    Workforce,
    WorkSite,
)
from jollyplanner.domain.timeutils import to_date, week_dates
from jollyplanner.errors import ParseError, PlannerError
from jollyplanner.optimizer.delegated import DelegatedOptimizer
from jollyplanner.output.pdf_generator import PDFGenerator
from jollyplanner.output.report_generator import RosterReportGenerator
from jollyplanner.scheduling.auto_planner import AutoAssignResult, AutoPlanner, Strategy
from jollyplanner.scheduling.cpsat_assigner import CPSATAssigner
from jollyplanner.store.planner_store import PlannerStore
from jollyplanner.store.repository import (
    InMemoryScheduleRepository,
    JsonFileScheduleRepository,
    ScheduleRepository,
)

logger = logging.getLogger(__name__)

DEMO_WEEK = date(2024, 8, 5)


def create_sample_workforce() -> Workforce:
    """Create a small sample workforce in Milan.

    Two floaters, four operators and two sites. In the week of 5 August 2024
    one operator is on approved holiday and another is off sick.
    """
    employees = [
        Employee("emp-1", "Mario", "Rossi", Role.OPERATOR, "Via Garibaldi 1, 20121 Milano",
                 start_date=date(2022, 1, 15), medical_visit_expiry=date(2025, 1, 15)),
        Employee("emp-2", "Luigi", "Verdi", Role.OPERATOR,
                 "Corso Vittorio Emanuele 10, 20122 Milano",
                 contract_type=ContractType.FIXED_TERM, start_date=date(2023, 6, 1),
                 end_date=date(2024, 12, 31), medical_visit_expiry=date(2024, 11, 30)),
        Employee("emp-3", "Anna", "Bianchi", Role.FLOATER, "Via Montenapoleone 8, 20121 Milano",
                 start_date=date(2021, 3, 20), medical_visit_expiry=date(2025, 3, 20)),
        Employee("emp-4", "Paolo", "Gialli", Role.OPERATOR, "Viale Monza 100, 20125 Milano",
                 start_date=date(2020, 2, 10), medical_visit_expiry=date(2025, 2, 10)),
        Employee("emp-5", "Sara", "Neri", Role.OPERATOR, "Via Torino 50, 20123 Milano",
                 start_date=date(2022, 9, 1), medical_visit_expiry=date(2025, 9, 1)),
        Employee("emp-6", "Luca", "Azzurri", Role.FLOATER, "Via Lorenteggio 200, 20146 Milano",
                 start_date=date(2023, 11, 15), medical_visit_expiry=date(2025, 11, 15)),
    ]
    sites = [
        WorkSite(
            "site-1", "Condominio Sole", "Via Dante 15, 20121 Milano",
            client="Amministrazioni srl", status=SiteStatus.ACTIVE,
            start_date=date(2023, 1, 1),
            assignments=[
                SiteAssignment("emp-1", "08:00 - 12:00",
                               frozenset({"Monday", "Wednesday", "Friday"})),
                SiteAssignment("emp-2", "14:00 - 18:00", frozenset({"Tuesday", "Thursday"})),
                SiteAssignment("emp-4", "09:00 - 13:00", frozenset(
                    {"Monday", "Tuesday", "Wednesday", "Thursday", "Friday"})),
            ],
        ),
        WorkSite(
            "site-2", "Uffici Futura", "Piazza Duomo 1, 20122 Milano",
            client="Futura SpA", status=SiteStatus.ACTIVE, start_date=date(2023, 5, 1),
            assignments=[
                SiteAssignment("emp-5", "07:00 - 11:00",
                               frozenset({"Monday", "Wednesday", "Friday"})),
            ],
        ),
    ]
    leave_requests = [
        LeaveRequest("lr-1", "emp-2", AbsenceType.HOLIDAY, date(2024, 8, 5), date(2024, 8, 9),
                     AbsenceStatus.APPROVED, "Summer holiday"),
        LeaveRequest("lr-2", "emp-4", AbsenceType.PERMIT, date(2024, 7, 25), date(2024, 7, 25),
                     AbsenceStatus.PENDING, "Medical visit"),
    ]
    sickness_records = [
        SicknessRecord("sick-1", "emp-5", date(2024, 7, 10), date(2024, 7, 12), "Flu"),
        SicknessRecord("sick-2", "emp-1", date(2024, 8, 7), date(2024, 8, 8), "Back pain"),
    ]
    return Workforce(employees, sites, leave_requests, sickness_records)


def create_sample_distances() -> StaticDistanceTable:
    """Approximate distances between the sample floaters' homes and sites."""
    return StaticDistanceTable({
        ("Via Montenapoleone 8, 20121 Milano", "Via Dante 15, 20121 Milano"): 1.2,
        ("Via Montenapoleone 8, 20121 Milano", "Piazza Duomo 1, 20122 Milano"): 0.9,
        ("Via Lorenteggio 200, 20146 Milano", "Via Dante 15, 20121 Milano"): 5.8,
        ("Via Lorenteggio 200, 20146 Milano", "Piazza Duomo 1, 20122 Milano"): 6.1,
    })


def load_workforce(path: str) -> Workforce:
    """Load a workforce JSON document (employees, sites, leaveRequests, sicknessRecords)."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise PlannerError(f"Cannot read workforce data from {path}: {e}")
    try:
        return Workforce.from_dict(data)
    except (KeyError, ValueError, TypeError) as e:
        raise PlannerError(f"Invalid workforce data in {path}: {e!r}")


def run_plan(
    workforce: Workforce,
    repository: ScheduleRepository,
    strategy: Strategy,
    reference: date,
    output_path: Optional[str] = None,
    cpsat: Optional[CPSATAssigner] = None,
) -> AutoAssignResult:
    """Detect gaps, auto-assign, print the roster and optionally write a PDF."""
    week = week_dates(reference)
    store = PlannerStore(repository, workforce.employees)
    optimizer = None
    if strategy == Strategy.DELEGATED:
        optimizer = DelegatedOptimizer(OptimizerConfig.from_env())
    planner = AutoPlanner(store, workforce, cpsat=cpsat, optimizer=optimizer)

    print(f"Planning week {week[0].isoformat()} - {week[-1].isoformat()} ({strategy.value})")
    result = planner.run(strategy, reference)

    summary = result.get_summary()
    print(f"  Uncovered shifts: {summary['uncovered_shifts']}")
    print(f"  Assigned: {summary['assigned']}")
    print(f"  Skipped: {summary['skipped']}")
    for reason in summary["skipped_reasons"][:5]:
        print(f"    - {reason}")
    for shift_id in summary["missing_shift_ids"][:5]:
        print(f"    - {shift_id}: reported uncovered by the optimizer")
    for floater_id, hours in summary["hours_by_floater"].items():
        print(f"  +{hours:.1f}h for {floater_id}")

    remaining = planner.uncovered_shifts(reference)
    print()
    print(RosterReportGenerator().generate_to_string(week, store.planners(), workforce, remaining))

    if output_path:
        print(f"Generating PDF: {output_path}")
        PDFGenerator().generate(week, store.planners(), workforce, output_path, remaining)
        print("  PDF created successfully!")
    return result


def run_demo(strategy: Strategy, reference: date, output_path: Optional[str] = None) -> None:
    """Run the sample workforce end to end with an in-memory store."""
    workforce = create_sample_workforce()
    cpsat = CPSATAssigner(CPSATConfig(time_limit_seconds=5.0), create_sample_distances())
    run_plan(workforce, InMemoryScheduleRepository(), strategy, reference, output_path, cpsat)


def run_report(data_path: str, schedules_path: str, reference: date) -> None:
    """Print the roster report of stored schedules."""
    workforce = load_workforce(data_path)
    store = PlannerStore(JsonFileScheduleRepository(schedules_path), workforce.employees)
    planner = AutoPlanner(store, workforce)
    print(
        RosterReportGenerator().generate_to_string(
            week_dates(reference),
            store.planners(),
            workforce,
            planner.uncovered_shifts(reference),
        )
    )


def _week_arg(value: str) -> date:
    try:
        return to_date(value)
    except ParseError as e:
        raise argparse.ArgumentTypeError(str(e))


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Jolly Planner - weekly floater scheduling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo                          Plan the sample week with the heuristic
  %(prog)s demo --strategy cpsat         Use the CP-SAT assigner
  %(prog)s demo --output roster.pdf      Also write a PDF roster

  %(prog)s sample --output data.json     Write the sample workforce as JSON
  %(prog)s plan --data data.json --schedules schedules.json --week 2024-08-05
  %(prog)s report --data data.json --schedules schedules.json --week 2024-08-05
        """,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    strategies = [s.value for s in Strategy]

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Plan the sample workforce")
    demo_parser.add_argument(
        "--strategy", "-s",
        choices=strategies,
        default=Strategy.HEURISTIC.value,
        help="Assignment strategy (default: heuristic)",
    )
    demo_parser.add_argument(
        "--week", "-w",
        type=_week_arg,
        default=DEMO_WEEK,
        help="Any date of the week to plan (default: 2024-08-05)",
    )
    demo_parser.add_argument("--output", "-o", type=str, help="Output PDF file path")

    # Sample data command
    sample_parser = subparsers.add_parser("sample", help="Write the sample workforce JSON")
    sample_parser.add_argument("--output", "-o", type=str, required=True, help="JSON file path")

    # Plan command
    plan_parser = subparsers.add_parser("plan", help="Auto-assign a week and store the result")
    plan_parser.add_argument("--data", "-d", required=True, help="Workforce JSON file")
    plan_parser.add_argument("--schedules", required=True, help="Schedules JSON file")
    plan_parser.add_argument(
        "--strategy", "-s",
        choices=strategies,
        default=Strategy.HEURISTIC.value,
        help="Assignment strategy (default: heuristic)",
    )
    plan_parser.add_argument(
        "--week", "-w",
        type=_week_arg,
        default=date.today(),
        help="Any date of the week to plan (default: today)",
    )
    plan_parser.add_argument(
        "--time-limit", "-t",
        type=float,
        default=10.0,
        help="CP-SAT solver time limit in seconds (default: 10)",
    )
    plan_parser.add_argument("--output", "-o", type=str, help="Output PDF file path")

    # Report command
    report_parser = subparsers.add_parser("report", help="Print the stored weekly roster")
    report_parser.add_argument("--data", "-d", required=True, help="Workforce JSON file")
    report_parser.add_argument("--schedules", required=True, help="Schedules JSON file")
    report_parser.add_argument(
        "--week", "-w",
        type=_week_arg,
        default=date.today(),
        help="Any date of the week to show (default: today)",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "demo":
            run_demo(Strategy(args.strategy), args.week, args.output)
            return 0
        elif args.command == "sample":
            payload = json.dumps(create_sample_workforce().to_dict(), indent=2)
            Path(args.output).write_text(payload, encoding="utf-8")
            print(f"Sample workforce written to {args.output}")
            return 0
        elif args.command == "plan":
            run_plan(
                load_workforce(args.data),
                JsonFileScheduleRepository(args.schedules),
                Strategy(args.strategy),
                args.week,
                args.output,
                CPSATAssigner(CPSATConfig(time_limit_seconds=args.time_limit)),
            )
            return 0
        elif args.command == "report":
            run_report(args.data, args.schedules, args.week)
            return 0
        else:
            parser.print_help()
            return 1
    except PlannerError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        if args.command in ("demo", "plan") and args.strategy == Strategy.DELEGATED.value:
            print("You can use --strategy heuristic instead.", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
