# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import os
import time
from decimal import Decimal
import requests
from .keystore import KeyStore
from ..protocol.types.op import Operation
from ..protocol.types.common import OpType
from ..protocol.config.params import DECIMALS, DENOM

DEFAULT_NODE = "http://localhost:8000"
DEFAULT_ASSET = "NOVA"

def get_node_url(args):
    return args.node or os.environ.get("STAKEPOOL_NODE", DEFAULT_NODE)

def to_units(amount: str) -> int:
    return int(Decimal(amount) * 10**DECIMALS)

def from_units(units) -> str:
    return f"{Decimal(int(units)) / 10**DECIMALS} {DENOM}"

def _get(url: str):
    try:
        resp = requests.get(url, timeout=10)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        print(f"Error: {resp.text}")
        sys.exit(1)
    return resp.json()

# --- Keys Commands ---
def cmd_keys_add(args):
    try:
        key = KeyStore().create_key(args.name)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Key '{args.name}' created.")
    print(f"Address: {key['address']}")
    print(f"Pubkey:  {key['public_key']}")

def cmd_keys_import(args):
    try:
        key = KeyStore().import_key(args.name, args.private_key)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Key '{args.name}' imported.")
    print(f"Address: {key['address']}")

def cmd_keys_list(args):
    keys = KeyStore().list_keys()
    if not keys:
        print("No keys found.")
        return
    print(f"{'Name':<15} {'Address':<50}")
    print("-" * 65)
    for k in keys:
        print(f"{k['name']:<15} {k['address']:<50}")

def cmd_keys_show(args):
    key = KeyStore().get_key(args.name)
    if not key:
        print(f"Key '{args.name}' not found.")
        sys.exit(1)
    print(json.dumps({k: v for k, v in key.items() if k != 'private_key'}, indent=2))

# --- Query Commands ---
def cmd_query_pool(args):
    data = _get(f"{get_node_url(args)}/pool/{args.asset}")
    print(f"Asset:        {data['asset_id']}")
    print(f"Owner:        {data['owner']}")
    print(f"Custody:      {data['custody_account']}")
    print(f"Total staked: {from_units(data['total_staked'])}")
    print(f"Custody bal.: {from_units(data['custody_balance'])}")

def cmd_query_stake(args):
    print(json.dumps(_get(f"{get_node_url(args)}/stake/{args.address}"), indent=2))

def cmd_query_stakes(args):
    data = _get(f"{get_node_url(args)}/stakes/{args.owner}")
    stakes = data["stakes"]
    if not stakes:
        print("No stakes found.")
        return
    print(f"{'Address':<52} {'Amount':>20} {'Unlock':>12} {'Status'}")
    print("-" * 100)
    for s in stakes:
        print(f"{s['address']:<52} {from_units(s['amount']):>20} {s['unlock_time']:>12} {s['status']}")

def cmd_query_balance(args):
    data = _get(f"{get_node_url(args)}/balance/{args.owner}/{args.asset}")
    print(f"Balance: {from_units(data['balance'])}")

# --- Tx Commands ---
def send_operation(args, op_type: OpType, **fields):
    key = KeyStore().get_key(args.from_name)
    if not key:
        print(f"Key '{args.from_name}' not found.")
        sys.exit(1)

    url = get_node_url(args)
    nonce = _get(f"{url}/nonce/{key['address']}")["nonce"]

    op = Operation(
        op_type=op_type,
        caller=key['address'],
        asset_id=args.asset,
        nonce=nonce,
        timestamp=int(time.time()),
        pub_key=key['public_key'],
        **fields
    )
    op.sign(bytes.fromhex(key['private_key']))

    try:
        resp = requests.post(f"{url}/op/send", json=op.model_dump(mode="json"), timeout=10)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        print(f"Rejected: {resp.text}")
        sys.exit(1)

    receipt = resp.json()
    print(f"Success! OpHash: {receipt['op_hash']}")
    return receipt

def cmd_tx_initialize(args):
    send_operation(args, OpType.INITIALIZE)

def cmd_tx_stake(args):
    receipt = send_operation(args, OpType.STAKE, amount=to_units(args.amount), lock_days=args.lock_days)
    print(f"Stake address: {receipt['result']['address']}")
    print(f"Unlocks at:    {receipt['result']['unlock_time']}")

def cmd_tx_start_unstake(args):
    send_operation(args, OpType.START_UNSTAKE, stake_address=args.stake_address)

def cmd_tx_complete_unstake(args):
    send_operation(args, OpType.COMPLETE_UNSTAKE, stake_address=args.stake_address)

def cmd_tx_restake(args):
    send_operation(args, OpType.RESTAKE, stake_address=args.stake_address, lock_days=args.lock_days)

def cmd_tx_owner_deposit(args):
    send_operation(args, OpType.OWNER_DEPOSIT, amount=to_units(args.amount))

def cmd_tx_owner_withdraw(args):
    send_operation(args, OpType.OWNER_WITHDRAW, amount=to_units(args.amount))

def cmd_faucet(args):
    url = get_node_url(args)
    try:
        resp = requests.post(
            f"{url}/faucet",
            json={"owner": args.owner, "asset_id": args.asset, "amount": to_units(args.amount)},
            timeout=10,
        )
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        print(f"Error: {resp.text}")
        sys.exit(1)
    print(f"Balance: {from_units(resp.json()['balance'])}")

def main():
    parser = argparse.ArgumentParser(prog="stakepool-cli", description="StakePool Client CLI")
    parser.add_argument("--node", help=f"Node URL (default: {DEFAULT_NODE})")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    # keys
    p_keys = subparsers.add_parser("keys", help="Manage keys")
    sp_keys = p_keys.add_subparsers(dest="subcommand")

    pk_add = sp_keys.add_parser("add", help="Create new key")
    pk_add.add_argument("name", help="Key name")

    pk_imp = sp_keys.add_parser("import", help="Import private key")
    pk_imp.add_argument("name", help="Key name")
    pk_imp.add_argument("--private-key", required=True, help="Hex private key")

    sp_keys.add_parser("list", help="List keys")

    pk_show = sp_keys.add_parser("show", help="Show key details")
    pk_show.add_argument("name", help="Key name")

    # query
    p_query = subparsers.add_parser("query", help="Query pool state")
    sp_query = p_query.add_subparsers(dest="subcommand")

    pq_pool = sp_query.add_parser("pool", help="Show pool of an asset")
    pq_pool.add_argument("--asset", default=DEFAULT_ASSET)

    pq_stake = sp_query.add_parser("stake", help="Show a stake record")
    pq_stake.add_argument("address", help="Stake address")

    pq_stakes = sp_query.add_parser("stakes", help="List stakes of an owner")
    pq_stakes.add_argument("owner", help="Owner address")

    pq_bal = sp_query.add_parser("balance", help="Token balance of an owner")
    pq_bal.add_argument("owner", help="Owner address")
    pq_bal.add_argument("--asset", default=DEFAULT_ASSET)

    # tx
    p_tx = subparsers.add_parser("tx", help="Create and send signed operations")
    sp_tx = p_tx.add_subparsers(dest="subcommand")

    def tx_parser(name: str, help_text: str):
        p = sp_tx.add_parser(name, help=help_text)
        p.add_argument("--from", dest="from_name", required=True, help="Signer key name")
        p.add_argument("--asset", default=DEFAULT_ASSET, help="Pool asset id")
        return p

    tx_parser("initialize", "Create the pool for an asset (caller becomes owner)")

    pt_stake = tx_parser("stake", "Lock tokens")
    pt_stake.add_argument("amount", help=f"Amount in {DENOM}")
    pt_stake.add_argument("--lock-days", type=int, required=True, help="30, 45, 60, ...")

    pt_start = tx_parser("start-unstake", "Begin cooldown of a matured stake")
    pt_start.add_argument("stake_address")

    pt_complete = tx_parser("complete-unstake", "Withdraw a stake after cooldown")
    pt_complete.add_argument("stake_address")

    pt_restake = tx_parser("restake", "Relock a matured stake")
    pt_restake.add_argument("stake_address")
    pt_restake.add_argument("--lock-days", type=int, required=True, help="30, 45, 60, ...")

    pt_dep = tx_parser("owner-deposit", "Fund the pool custody (owner only)")
    pt_dep.add_argument("amount", help=f"Amount in {DENOM}")

    pt_wd = tx_parser("owner-withdraw", "Withdraw from pool custody (owner only)")
    pt_wd.add_argument("amount", help=f"Amount in {DENOM}")

    # faucet
    p_faucet = subparsers.add_parser("faucet", help="Request devnet tokens")
    p_faucet.add_argument("owner", help="Recipient address")
    p_faucet.add_argument("amount", help=f"Amount in {DENOM}")
    p_faucet.add_argument("--asset", default=DEFAULT_ASSET)

    args = parser.parse_args()

    if args.command == "keys":
        if args.subcommand == "add": cmd_keys_add(args)
        elif args.subcommand == "import": cmd_keys_import(args)
        elif args.subcommand == "list": cmd_keys_list(args)
        elif args.subcommand == "show": cmd_keys_show(args)
        else: p_keys.print_help()

    elif args.command == "query":
        if args.subcommand == "pool": cmd_query_pool(args)
        elif args.subcommand == "stake": cmd_query_stake(args)
        elif args.subcommand == "stakes": cmd_query_stakes(args)
        elif args.subcommand == "balance": cmd_query_balance(args)
        else: p_query.print_help()

    elif args.command == "tx":
        if args.subcommand == "initialize": cmd_tx_initialize(args)
        elif args.subcommand == "stake": cmd_tx_stake(args)
        elif args.subcommand == "start-unstake": cmd_tx_start_unstake(args)
        elif args.subcommand == "complete-unstake": cmd_tx_complete_unstake(args)
        elif args.subcommand == "restake": cmd_tx_restake(args)
        elif args.subcommand == "owner-deposit": cmd_tx_owner_deposit(args)
        elif args.subcommand == "owner-withdraw": cmd_tx_owner_withdraw(args)
        else: p_tx.print_help()

    elif args.command == "faucet":
        cmd_faucet(args)

    else:
        parser.print_help()

if __name__ == "__main__":
    main()
