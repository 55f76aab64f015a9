import argparse
import logging
import os
import sys
from typing import Tuple

from dotenv import load_dotenv

from amm_router import quote_two_hop
from liquidation_errors import LiquidationError
from liquidator_config import DEFAULT_RPC_URL, ConfigError, InitiatorPolicy, load_bindings, load_initiator_policy
from pair_reader import LivePair, connect
from policy import (
    AddressBlocked,
    check_addresses,
    check_bindings,
    parse_allow_addresses,
    parse_ignore_addresses,
)
from sim_chain import build_liquidation_scenario

load_dotenv()


def parse_reserves(value: str) -> Tuple[int, int]:
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 2:
        raise argparse.ArgumentTypeError("reserves must be two comma-separated integers")
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        raise argparse.ArgumentTypeError(f"not integers: {value}") from None


def run_simulate(args: argparse.Namespace) -> int:
    scenario = build_liquidation_scenario(
        debt=args.debt,
        collateral=args.collateral,
        secondary_collateral=args.secondary_collateral,
        pool_collateral_reserves=args.pool_collateral_reserves,
        pool_target_reserves=args.pool_target_reserves,
        lender_liquidity=args.lender_liquidity,
        fee_bps=args.fee_bps,
        initiator_policy=args.initiator_policy,
    )
    liquidator = scenario.liquidator
    owner = scenario.owner
    usdc = scenario.debt_token

    print(f"Owner {owner}: debt={scenario.lending.total_debt_of(owner)} USDC, "
          f"collateral={scenario.lending.collateral_of(owner, scenario.collateral_token.address)} WETH")

    try:
        if args.borrow:
            report = liquidator.start(args.borrow, args.min_profit, sender=owner)
        else:
            report = liquidator.start_full(args.min_profit, sender=owner)
    except LiquidationError as e:
        print(f"aborted: {type(e).__name__}: {e}", file=sys.stderr)
        print(f"Owner after abort: debt={scenario.lending.total_debt_of(owner)} USDC, "
              f"balance={usdc.balance_of(owner)} USDC")
        return 1

    print(f"Borrowed:       {report.borrow_amount}")
    print(f"Fee:            {report.fee}")
    print(f"Debt repaid:    {report.debt_repaid}")
    print(f"Collateral sold: {report.collateral_sold}")
    print(f"Final balance:  {report.final_balance}")
    print(f"Surplus:        {report.surplus}")
    print(f"Owner after: debt={scenario.lending.total_debt_of(owner)} USDC, balance={usdc.balance_of(owner)} USDC")
    return 0


def run_quote(args: argparse.Namespace) -> int:
    allowed = parse_allow_addresses(args.allow_addresses)
    ignored = parse_ignore_addresses(args.ignore_addresses)

    pool_collateral, pool_target = args.pool_collateral, args.pool_target
    if not (pool_collateral and pool_target):
        try:
            bindings = load_bindings()
            check_bindings(bindings, allowed, ignored)
        except ConfigError as e:
            print(f"config error: {e}", file=sys.stderr)
            return 2
        except AddressBlocked as e:
            print(f"quote blocked: {e}", file=sys.stderr)
            return 2
        pool_collateral = pool_collateral or bindings.pool_collateral
        pool_target = pool_target or bindings.pool_target

    required = {
        "--pool-collateral": pool_collateral,
        "--pool-target": pool_target,
        "--collateral-token": args.collateral_token,
        "--target-token": args.target_token,
    }
    missing = [flag for flag, value in required.items() if not value]
    if missing:
        print(f"missing: {', '.join(missing)}", file=sys.stderr)
        return 2

    try:
        check_addresses(required.values(), allowed, ignored)
    except AddressBlocked as e:
        print(f"quote blocked: {e}", file=sys.stderr)
        return 2

    try:
        w3 = connect(args.rpc_url)
    except RuntimeError as e:
        print(str(e), file=sys.stderr)
        return 1

    pool_a = LivePair(w3, pool_collateral)
    pool_b = LivePair(w3, pool_target)
    try:
        amount_out = quote_two_hop(pool_a, pool_b, args.collateral_token, args.target_token, args.amount)
    except LiquidationError as e:
        print(f"quote failed: {type(e).__name__}: {e}", file=sys.stderr)
        return 1

    print(f"Route: {args.collateral_token} -> {pool_a.address} -> {pool_b.address} -> {args.target_token}")
    print(f"Amount in:  {args.amount}")
    print(f"Amount out: {amount_out}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Flash-loan liquidation of a debt/collateral position.")
    sub = parser.add_subparsers(dest="command", required=True)

    sim = sub.add_parser("simulate", help="Run a liquidation against a simulated chain.")
    sim.add_argument("--debt", type=int, default=1000, help="Owner's debt (raw units).")
    sim.add_argument("--collateral", type=int, default=1000, help="Owner's primary collateral (raw units).")
    sim.add_argument("--secondary-collateral", type=int, default=0, help="Owner's secondary collateral.")
    sim.add_argument("--pool-collateral-reserves", type=parse_reserves, default=(997_000, 1_001_000),
                     help="collateral,intermediate reserves of the first pool.")
    sim.add_argument("--pool-target-reserves", type=parse_reserves, default=(997_000, 1_051_050),
                     help="intermediate,debt reserves of the second pool.")
    sim.add_argument("--lender-liquidity", type=int, default=1_000_000, help="Flash lender liquidity.")
    sim.add_argument("--fee-bps", type=int, default=5, help="Flash loan premium (bps).")
    sim.add_argument("--borrow", type=int, default=0, help="Borrow amount (default: full debt).")
    sim.add_argument("--min-profit", type=int, default=0, help="Minimum surplus (raw units).")
    sim.add_argument("--initiator-policy", type=InitiatorPolicy, default=None,
                     choices=list(InitiatorPolicy), help="Accepted callback initiator.")
    sim.set_defaults(func=run_simulate)

    q = sub.add_parser("quote", help="Preview the two-hop route against live pairs.")
    q.add_argument("--rpc-url", default=DEFAULT_RPC_URL)
    q.add_argument("--pool-collateral", default="", help="Defaults to COLLATERAL_POOL_ADDRESS via the protocol bindings.")
    q.add_argument("--pool-target", default="", help="Defaults to TARGET_POOL_ADDRESS via the protocol bindings.")
    q.add_argument("--collateral-token", default=os.getenv("COLLATERAL_TOKEN_ADDRESS", ""))
    q.add_argument("--target-token", default=os.getenv("DEBT_TOKEN_ADDRESS", ""))
    q.add_argument("--amount", type=int, required=True, help="Collateral amount (raw units).")
    q.add_argument("--ignore-addresses", default="", help="Comma-separated addresses to ignore.")
    q.add_argument("--allow-addresses", default="", help="Comma-separated addresses to allow.")
    q.set_defaults(func=run_quote)
    return parser


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )
    args = build_parser().parse_args()
    if getattr(args, "initiator_policy", "unset") is None:
        try:
            args.initiator_policy = load_initiator_policy()
        except ConfigError as e:
            print(str(e), file=sys.stderr)
            sys.exit(2)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
