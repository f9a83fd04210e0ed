# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import asyncio
import json
import logging
import os
from uvicorn import Config, Server
from ...protocol.crypto.keys import generate_private_key, public_key_from_private
from ...protocol.crypto.addresses import address_from_pubkey
from ...protocol.config.params import CURRENT_NETWORK, DECIMALS
from ..core.service import StakingService
from ..rpc import api # import module to set globals

logger = logging.getLogger(__name__)

DEFAULT_ASSET = "NOVA"

def cmd_init(args):
    """Initialize node: pool owner key, genesis, data dir."""
    data_dir = args.datadir
    os.makedirs(data_dir, exist_ok=True)

    key_path = os.path.join(data_dir, "owner_key.hex")
    if not os.path.exists(key_path):
        if CURRENT_NETWORK.faucet_priv_key:
            # Deterministic owner key for Devnet
            priv = bytes.fromhex(CURRENT_NETWORK.faucet_priv_key)
            print("Using DETERMINISTIC Devnet owner key.")
        else:
            priv = generate_private_key()
        with open(key_path, "w") as f:
            f.write(priv.hex())
        os.chmod(key_path, 0o600)
        print("Generated new pool owner key.")
    else:
        print(f"Key already exists at {key_path}")
        with open(key_path, "r") as f:
            priv = bytes.fromhex(f.read().strip())

    pub = public_key_from_private(priv)
    owner = address_from_pubkey(pub, prefix=CURRENT_NETWORK.bech32_prefix_acc)
    print(f"Owner:  {owner}")
    print(f"PubKey: {pub.hex()}")

    genesis_path = os.path.join(data_dir, "genesis.json")
    if os.path.exists(genesis_path):
        print(f"Genesis already exists at {genesis_path}")
    else:
        genesis = {
            "alloc": {owner: {args.asset: args.owner_funds * 10**DECIMALS}},
            "pools": [{"owner": owner, "asset_id": args.asset}],
        }
        with open(genesis_path, "w") as f:
            json.dump(genesis, f, indent=2)
        print(f"Wrote genesis for pool {args.asset}")

    print(f"\nNode initialized in {data_dir}")

async def run_node_async(args):
    data_dir = args.datadir
    db_path = os.path.join(data_dir, "stakepool.db")

    print(f"Starting StakePool node ({CURRENT_NETWORK.network_id})...")
    print(f"Data DB: {db_path}")
    print(f"RPC: {args.host}:{args.port}")

    service = StakingService(db_path)
    service.apply_genesis(os.path.join(data_dir, "genesis.json"))
    api.service = service

    config = Config(app=api.app, host=args.host, port=args.port, log_level="info")
    server = Server(config)
    try:
        await server.serve()
    finally:
        service.close()
        logging.info("Node stopped.")

def cmd_run(args):
    """Wrapper to run async main."""
    try:
        asyncio.run(run_node_async(args))
    except KeyboardInterrupt:
        pass

def main():
    parser = argparse.ArgumentParser(description="StakePool Node CLI")
    parser.add_argument("--datadir", default="./.stakepool", help="Data directory")

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Initialize node configuration")
    init_parser.add_argument("--asset", default=DEFAULT_ASSET, help="Asset id of the genesis pool")
    init_parser.add_argument("--owner-funds", type=int, default=1_000_000, help="Whole tokens minted to the owner")

    run_parser = subparsers.add_parser("run", help="Run the node")
    run_parser.add_argument("--host", default="0.0.0.0", help="RPC Host")
    run_parser.add_argument("--port", type=int, default=8000, help="RPC Port")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "init":
        cmd_init(args)
    elif args.command == "run":
        cmd_run(args)

if __name__ == "__main__":
    main()
