"""Command-line interface for the stablecoin yield optimizer."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .config import AppConfig, load_config
from .errors import YieldOptimizerError, describe_error
from .execution import SimulatedMover, SimulationStore
from .logging_setup import configure_logging
from .models import RebalanceAnalysis, RebalanceIntent, YieldOpportunity
from .services import YieldOptimizer
from .sources import load_holdings

SIMULATION_ADDRESS = "0x000000000000000000000000000000000000dEaD"


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="stableyield",
        description="Cross-chain stablecoin yield optimizer",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    opp_parser = sub.add_parser("opportunities", help="List ranked yield opportunities")
    opp_parser.add_argument(
        "--limit", type=int, default=10, help="Number of rows to show (default: 10)"
    )

    analyze_parser = sub.add_parser(
        "analyze", help="Analyze positions and print recommended rebalances"
    )
    analyze_parser.add_argument(
        "--positions",
        default=None,
        help="YAML positions file (default: every configured wallet)",
    )

    sim_parser = sub.add_parser(
        "simulate", help="Dry-run rebalances against an in-memory wallet"
    )
    sim_parser.add_argument("--positions", required=True, help="YAML positions file")
    sim_parser.add_argument(
        "--execute",
        action="store_true",
        help="Execute the best approved intent and re-analyze",
    )
    sim_parser.add_argument(
        "--deposit",
        default=None,
        metavar="AMOUNT",
        help="Deposit this much idle --token into the best-ranked opportunity",
    )
    sim_parser.add_argument(
        "--token", default="USDC", help="Stablecoin to deposit (default: USDC)"
    )

    monitor_parser = sub.add_parser("monitor", help="Continuous analysis loop")
    monitor_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Check interval in minutes (overrides config)",
    )

    return parser


# ---------------------------------------------------------------------------
# Output formatting
# ---------------------------------------------------------------------------


def format_opportunity(rank: int, opp: YieldOpportunity) -> str:
    audited = "audited" if opp.metadata.audit_status else "unaudited"
    return (
        f"{rank:>2}. {opp.protocol.value:<9} {opp.chain.value:<9} {opp.token:<5} "
        f"APY {opp.apy:6.2f}%  TVL ${opp.tvl:,.0f}  risk {opp.risk_score}/10 ({audited})"
    )


def format_intent(intent: RebalanceIntent) -> str:
    cost = intent.estimated_cost
    benefit = intent.net_benefit
    lines = [
        f"{intent.id} [{intent.status.value}]",
        f"  {intent.source.amount} {intent.token}: "
        f"{intent.source.protocol.value}/{intent.source.chain.value} ({intent.source.apy:.2f}%) -> "
        f"{intent.target.protocol.value}/{intent.target.chain.value} ({intent.target.expected_apy:.2f}%)",
        f"  Cost: ${cost.total_cost_usd} (gas ${cost.gas_fee}, bridge ${cost.bridge_fee}, "
        f"slippage ${cost.slippage})",
        f"  Gain: ${benefit.yearly_gain_usd}/yr, net ${benefit.net_yearly_gain_usd}/yr, "
        f"break-even {benefit.break_even_days if benefit.break_even_days is not None else 'never'} days",
    ]
    for check in intent.failed_checks:
        lines.append(f"  ✗ {check.rule.value}: {check.message}")
    return "\n".join(lines)


def format_analysis(analysis: RebalanceAnalysis) -> str:
    lines = [
        f"Positions: {len(analysis.current_positions)} · idle ${analysis.idle_balance}",
        f"APY: {analysis.total_current_apy:.2f}% -> {analysis.total_projected_apy:.2f}%",
        f"Recommended actions: {analysis.recommended_actions}",
        f"Cost ${analysis.total_cost_usd} · gain ${analysis.total_yearly_gain_usd}/yr "
        f"· net ${analysis.net_yearly_gain_usd}/yr",
    ]
    for intent in analysis.rebalance_intents:
        lines.append("")
        lines.append(format_intent(intent))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _opportunities(config: AppConfig, limit: int) -> None:
    optimizer = YieldOptimizer(config)
    opportunities = await optimizer.list_opportunities(limit)
    if not opportunities:
        print("No opportunities available.")
    for rank, opp in enumerate(opportunities, start=1):
        print(format_opportunity(rank, opp))


async def _analyze(config: AppConfig, positions_file: str | None) -> None:
    optimizer = YieldOptimizer(config)

    if positions_file is None:
        results = await optimizer.check_wallets()
        if not results:
            print("No wallets configured.")
        for address, analysis in results.items():
            print(f"━━ {address} ━━")
            print(format_analysis(analysis))
        return

    holdings = load_holdings(positions_file)
    idle = sum(b.idle_value_usd for b in holdings.balances)
    analysis = await optimizer.analyze_positions(holdings.positions, f"{idle:.2f}")
    print(format_analysis(analysis))

    ranked = await optimizer.list_opportunities()
    blocked = optimizer.analyzer.blocked_intents(holdings.positions, ranked)
    if blocked:
        print("\nBlocked by guardrails:")
        for intent in blocked:
            print(format_intent(intent))


async def _simulate_deposit(optimizer: YieldOptimizer, amount: str, token: str) -> None:
    target = next(
        (o for o in await optimizer.list_opportunities() if o.token == token.upper()),
        None,
    )
    if target is None:
        print(f"\nNo {token.upper()} opportunity to deposit into.")
        return
    result = await optimizer.deposit(target, amount, SIMULATION_ADDRESS)
    print(f"\nDeposited {amount} {target.token} into {target.protocol.value} "
          f"on {target.chain.value}: {result.tx_hash}")


async def _simulate(
    config: AppConfig,
    positions_file: str,
    execute: bool,
    deposit: str | None = None,
    token: str = "USDC",
) -> None:
    holdings = load_holdings(positions_file)
    store = SimulationStore(SIMULATION_ADDRESS, config.execution.simulated_balances)
    for position in holdings.positions:
        store.seed(position)

    optimizer = YieldOptimizer(
        config, position_source=store, mover=SimulatedMover(store)
    )
    analysis = await optimizer.analyze_wallet(SIMULATION_ADDRESS)
    print(format_analysis(analysis))

    if deposit is not None:
        await _simulate_deposit(optimizer, deposit, token)
        if not execute:
            print("\nAfter deposit:")
            print(format_analysis(await optimizer.analyze_wallet(SIMULATION_ADDRESS)))
            return
        analysis = await optimizer.analyze_wallet(SIMULATION_ADDRESS)

    if not execute:
        return
    if not analysis.rebalance_intents:
        print("\nNothing to execute.")
        return

    best = max(
        analysis.rebalance_intents,
        key=lambda i: float(i.net_benefit.net_yearly_gain_usd),
    )
    position = next(
        (p for p in analysis.current_positions if p.id == best.source.position_id), None
    )
    result = await optimizer.execute(best, SIMULATION_ADDRESS, position)
    print(f"\nExecuted {result.intent.id}: {' -> '.join(result.steps)}")
    print(f"  withdraw {result.withdraw.tx_hash}")
    print(f"  deposit  {result.deposit.tx_hash}")

    print("\nAfter rebalance:")
    print(format_analysis(await optimizer.analyze_wallet(SIMULATION_ADDRESS)))


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)

    if args.command == "opportunities":
        await _opportunities(config, args.limit)
    elif args.command == "analyze":
        await _analyze(config, args.positions)
    elif args.command == "simulate":
        await _simulate(
            config, args.positions, args.execute, args.deposit, args.token
        )
    elif args.command == "monitor":
        await YieldOptimizer(config).run_continuous(args.interval)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except YieldOptimizerError as e:
        print(f"Error: {describe_error(e)}", file=sys.stderr)
        sys.exit(1)
