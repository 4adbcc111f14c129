"""
Demo script to run the risk engine end to end on a sample pool

This script demonstrates:
1. Loading pool data and the risk policy
2. Reconstructing a pool snapshot
3. Interest rates and position risk
4. Supplier concentration
5. Price shock scenarios and cliff points
6. The liquidation stress curve
7. The composite risk score

Pool data is read from config/pools.yaml; policy overrides from
config/risk_policy.yaml (or the file named by MARGIN_RISK_POLICY in .env).
"""

import argparse
import re
import sys
from pathlib import Path

import pandas as pd
import yaml

from margin_risk.config import load_policy
from margin_risk.errors import MarginRiskError
from margin_risk.metrics.concentration import analyze, utilization_if_top_supplier_exits
from margin_risk.metrics.position import evaluate, is_at_risk, risk_distribution
from margin_risk.rates.model import InterestRateModel
from margin_risk.scoring.scorer import CompositeRiskScorer
from margin_risk.state.models import ALL_ASSETS, ShockScenario
from margin_risk.state.reconstructor import StateReconstructor, save_snapshot
from margin_risk.stress.curve import LiquidationStressCurve
from margin_risk.stress.engine import PriceShockSimulator


# ANSI color codes for pretty output
class Colors:
    HEADER = "\033[95m"
    OKBLUE = "\033[94m"
    OKCYAN = "\033[96m"
    OKGREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"
    BOLD = "\033[1m"


def readable_number(num):
    """Convert number to K/M/B notation"""
    if abs(num) < 1000:
        return f"{num:.2f}"

    for unit in ["K", "M", "B", "T"]:
        num /= 1000
        if abs(num) < 1000:
            return f"{num:.2f}{unit}"
    return f"{num:.2f}P"


def _format_dollars(text):
    """Auto-format dollar amounts in text with K/M/B notation"""

    def replace_amount(match):
        return f"${readable_number(float(match.group(1).replace(',', '')))}"

    return re.sub(r"\$([0-9][0-9,]*\.?[0-9]*)", replace_amount, text)


def print_header(text):
    """Print a colored header"""
    print(f"\n{Colors.HEADER}{Colors.BOLD}{'=' * 60}{Colors.ENDC}")
    print(f"{Colors.HEADER}{Colors.BOLD}{text.center(60)}{Colors.ENDC}")
    print(f"{Colors.HEADER}{Colors.BOLD}{'=' * 60}{Colors.ENDC}\n")


def print_success(text):
    print(f"{Colors.OKGREEN}[OK] {_format_dollars(text)}{Colors.ENDC}")


def print_info(text):
    print(f"{Colors.OKCYAN}  {_format_dollars(text)}{Colors.ENDC}")


def print_warning(text):
    print(f"{Colors.WARNING}[WARNING] {_format_dollars(text)}{Colors.ENDC}")


def print_error(text):
    print(f"{Colors.FAIL}[ERROR] {_format_dollars(text)}{Colors.ENDC}")


def level_color(level):
    if level == "HIGH":
        return Colors.FAIL
    elif level == "MODERATE":
        return Colors.WARNING
    return Colors.OKGREEN


def load_pools(config_path):
    """Load sample pool data"""
    print_header("Loading Configuration")

    if not config_path.exists():
        print_error(f"Configuration file not found: {config_path}")
        sys.exit(1)

    with open(config_path, "r") as f:
        pools = yaml.safe_load(f)["pools"]

    print_success(f"Loaded {len(pools)} pool(s) from {config_path.name}")
    for pool in pools:
        print_info(f"  - {pool['name']} (liquidation ratio: {pool['liquidation_risk_ratio']:.2f})")

    return pools


def build_snapshot(pool):
    """Reconstruct a snapshot from the raw sample rows"""
    print_header(f"Reconstructing State: {pool['name']}")

    reconstructor = StateReconstructor(pool)

    states_df = pd.DataFrame(pool.get("margin_managers", []))
    for column, value in pool.get("oracle", {}).items():
        states_df[column] = value

    snapshot = reconstructor.create_snapshot(
        pool["state"],
        states_df,
        pd.DataFrame(pool.get("supplies", []), columns=["supplier", "amount"]),
        pd.DataFrame(pool.get("withdrawals", []), columns=["supplier", "amount"]),
    )

    print_success(f"Reconstructed {len(snapshot.positions)} positions")
    print_success(f"Built ledger of {len(snapshot.ledger)} suppliers")

    return snapshot


def show_pool(snapshot, model):
    """Display pool liquidity and rates"""
    print_header(f"Pool Analysis: {snapshot.pool_name}")

    state = snapshot.state
    rates = model.pool_rates(state)

    print(f"{Colors.BOLD}Liquidity:{Colors.ENDC}")
    print_info(f"Total Supply: ${state.supply:,.2f}")
    print_info(f"Total Borrow: ${state.borrow:,.2f}")
    print_info(f"Utilization: {state.utilization_pct:.2f}%")
    print_info(f"Available Liquidity: ${state.available_liquidity:,.2f} ({state.available_liquidity_pct:.1f}%)")
    print_info(f"Borrowable Before Max Utilization: ${state.max_borrowable(snapshot.pool_config):,.2f}")
    print()

    print(f"{Colors.BOLD}Interest Rates:{Colors.ENDC}")
    print_info(f"Borrow APR: {rates.borrow_apr * 100:.2f}%")
    print_info(f"Supply APR: {rates.supply_apr * 100:.2f}%")
    print_info(f"Kink: {snapshot.interest_config.optimal_utilization * 100:.0f}%")

    if state.utilization > snapshot.interest_config.optimal_utilization:
        print_warning("Utilization is above the kink: borrow rates rising steeply")


def show_positions(snapshot, policy):
    """Display position risk"""
    print_header("Position Risk")

    positions = snapshot.positions
    if not positions:
        print_warning("No open positions")
        return

    print(f"{Colors.BOLD}Risk Ratio Distribution:{Colors.ENDC}")
    for bucket in risk_distribution(positions, policy):
        print_info(
            f"{bucket['label']:<10}: {bucket['count']} positions, ${bucket['total_debt_usd']:,.0f} debt"
        )
    print()

    print(f"{Colors.BOLD}Riskiest Positions:{Colors.ENDC}")
    for position in positions[:5]:
        risk = evaluate(position, policy)
        line = (
            f"{position.margin_manager_id:<8} {position.direction:<7} "
            f"ratio {risk.risk_ratio:6.3f}  debt ${risk.debt_usd:,.0f}"
        )
        if risk.is_liquidatable:
            print_error(line)
        elif is_at_risk(position, policy):
            print_warning(line)
        else:
            print_info(line)


def show_concentration(snapshot, policy):
    """Display supplier concentration"""
    print_header("Supplier Concentration")

    analysis = analyze(snapshot.ledger, policy.dominance)

    print_info(f"Suppliers: {analysis.supplier_count}")
    print_info(f"HHI: {analysis.hhi:,.0f}")
    print_info(f"Gini: {analysis.gini:.3f}")
    print_info(f"Top Supplier: {analysis.top1_share_pct:.1f}%  Top 3: {analysis.top3_share_pct:.1f}%")
    print_info(f"Dominance: {analysis.dominance_level}")

    whale_exit = utilization_if_top_supplier_exits(snapshot.state, analysis)
    if whale_exit > snapshot.interest_config.optimal_utilization * 100:
        print_warning(f"Top supplier exit would push utilization to {whale_exit:.1f}%")
    else:
        print_info(f"Utilization if top supplier exits: {whale_exit:.1f}%")


def show_shocks(snapshot, policy):
    """Run price shock scenarios"""
    print_header("Price Shock Scenarios")

    simulator = PriceShockSimulator(policy)
    results = simulator.run_scenarios(snapshot.positions, shocks=range(-50, 21, 10))

    print(f"  {'Shock':<8} {'Liquidatable':<14} {'At Risk':<9} {'Debt at Risk':<14}")
    print(f"  {'-'*8} {'-'*14} {'-'*9} {'-'*14}")

    for _, row in results.iterrows():
        color = Colors.FAIL if row["liquidatable_count"] else Colors.OKCYAN
        print(
            f"{color}  {row['pct_change']:+6.0f}%  {int(row['liquidatable_count']):<14} "
            f"{int(row['at_risk_count']):<9} ${readable_number(row['total_debt_at_risk_usd']):<13}{Colors.ENDC}"
        )
    print()

    first = simulator.first_liquidation_pct(snapshot.positions, ALL_ASSETS)
    if first is None:
        print_success("No price drop liquidates a healthy position")
    else:
        print_warning(f"First liquidation at a {first:+.2f}% price move")

    cliffs = simulator.find_cliff_points(simulator.run_scenarios(snapshot.positions))
    if cliffs:
        print_warning(f"Found {len(cliffs)} cliff points (sharp debt-at-risk increases)")
        for cliff in cliffs:
            print_warning(
                f"  {cliff['from_pct']:+.0f}% -> {cliff['pct']:+.0f}%: "
                f"{cliff['multiplier']:.1f}x debt at risk"
            )
    else:
        print_success("No cliff points detected")

    print()
    print(simulator.simulate_many(snapshot.positions, ShockScenario(ALL_ASSETS, -30.0)).summary())


def show_stress_curve(snapshot, policy, historical_prices):
    """Build the liquidation stress curve"""
    print_header("Liquidation Stress Curve")

    if not snapshot.positions:
        print_warning("No positions to stress")
        return

    analysis = LiquidationStressCurve(policy).analyze(
        snapshot.positions, historical_prices=historical_prices
    )

    print(analysis.summary())

    if analysis.buffer_pct is not None and analysis.buffer_pct < policy.watch_distance_pct:
        print_warning(f"Liquidation price is only {analysis.buffer_pct:.1f}% away")


def show_score(snapshot, policy):
    """Calculate and display the composite risk score"""
    print_header("Risk Score Calculation")

    scorer = CompositeRiskScorer(policy)
    result = scorer.score_pool(snapshot.state, snapshot.interest_config, snapshot.ledger)
    level = scorer.get_risk_level(result.total)

    print(f"{Colors.BOLD}Composite Risk Score:{Colors.ENDC}")
    print(f"{level_color(level)}  {result.total:.1f} / 100  ({level}){Colors.ENDC}")
    print()

    print(scorer.generate_report(result, snapshot.pool_name))

    return result.total, level


def main():
    """Main demo function"""
    parser = argparse.ArgumentParser(description="Margin Pool Risk Engine Demo")
    parser.add_argument(
        "--pools",
        type=Path,
        default=Path(__file__).parent / "config" / "pools.yaml",
        help="YAML file with sample pool data",
    )
    parser.add_argument(
        "--save-snapshot",
        action="store_true",
        help="Save reconstructed snapshots to data/processed",
    )
    args = parser.parse_args()

    print(f"\n{Colors.HEADER}{Colors.BOLD}")
    print("╔════════════════════════════════════════════════════════════╗")
    print("║                    Margin Risk Engine                      ║")
    print("║                 Margin Pool Risk Analysis                  ║")
    print("╚════════════════════════════════════════════════════════════╝")
    print(f"{Colors.ENDC}\n")

    policy = load_policy()
    pools = load_pools(args.pools)
    results = []

    for pool in pools:
        try:
            snapshot = build_snapshot(pool)
            model = InterestRateModel.for_pool(snapshot.interest_config, snapshot.pool_config)

            show_pool(snapshot, model)
            show_positions(snapshot, policy)
            show_concentration(snapshot, policy)
            show_shocks(snapshot, policy)
            show_stress_curve(snapshot, policy, pool.get("historical_prices"))
            score, level = show_score(snapshot, policy)

            if args.save_snapshot:
                output_path = Path(__file__).parent / "data" / "processed" / f"{snapshot.pool_name.replace('/', '-')}.json"
                save_snapshot(snapshot, str(output_path))
                print_success(f"Snapshot saved to: {output_path}")

            results.append((snapshot.pool_name, score, level))

        except MarginRiskError as e:
            print_error(f"Failed to analyze pool {pool['name']}: {e}")

    if len(results) > 1:
        print_header("Multi-Pool Summary")
        for name, score, level in results:
            print(f"{level_color(level)}  {name:<20} | Score: {score:>5.1f} ({level}){Colors.ENDC}")

    print_header("Done")


if __name__ == "__main__":
    main()
