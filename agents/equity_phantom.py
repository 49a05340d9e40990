"""
Equity Phantom: cap table, vesting and ERC-20 equity token operations.

Chain calls go through web3 against an Ethereum JSON-RPC endpoint (Sepolia by
default). Every action returns {"success": True, "data": ...} or
{"success": False, "error": message}.
"""
import os
import math
import calendar
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from web3 import Web3

from agents.base import BaseAgent
from database import db, serialize_doc, to_object_id, as_utc
from gemini import GEMINI_MODELS
from schemas import EquityHolder, VestingSchedule

logger = logging.getLogger(__name__)

ETHEREUM_NETWORK = os.getenv("ETHEREUM_NETWORK", "sepolia")
INFURA_PROJECT_ID = os.getenv("INFURA_PROJECT_ID", "")
ETHEREUM_RPC_URL = os.getenv("ETHEREUM_RPC_URL") or f"https://sepolia.infura.io/v3/{INFURA_PROJECT_ID}"

HISTORY_BLOCKS = 10000
HISTORY_LIMIT = 50


def _fn(name, inputs, outputs, mutability="view"):
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": "", "type": t} for t in outputs],
    }


ERC20_ABI = [
    _fn("name", [], ["string"]),
    _fn("symbol", [], ["string"]),
    _fn("decimals", [], ["uint8"]),
    _fn("totalSupply", [], ["uint256"]),
    _fn("balanceOf", [("owner", "address")], ["uint256"]),
    _fn("transfer", [("to", "address"), ("amount", "uint256")], ["bool"], "nonpayable"),
    _fn("approve", [("spender", "address"), ("amount", "uint256")], ["bool"], "nonpayable"),
    _fn("allowance", [("owner", "address"), ("spender", "address")], ["uint256"]),
    _fn("transferFrom", [("from", "address"), ("to", "address"), ("amount", "uint256")], ["bool"], "nonpayable"),
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "Approval",
        "anonymous": False,
        "inputs": [
            {"name": "owner", "type": "address", "indexed": True},
            {"name": "spender", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256", "indexed": False},
        ],
    },
]

DEMO_ALLOCATIONS = {
    "company_name": "GhostFounder Demo",
    "token_address": None,
    "holders": [
        {"name": "Founder 1", "role": "founder", "percentage": 40},
        {"name": "Founder 2", "role": "founder", "percentage": 30},
        {"name": "ESOP Pool", "role": "esop", "percentage": 15},
        {"name": "Reserved", "role": "reserved", "percentage": 15},
    ],
    "total_equity": 100,
    "allocated_equity": 100,
}

DEFAULT_VESTING = {
    "total_amount": 10000,
    "start_date": "2024-01-01",
    "cliff_months": 12,
    "vesting_months": 48,
    "claimed_amount": 0,
}


def format_units(value: int, decimals: int) -> str:
    return str(Decimal(value) / (Decimal(10) ** decimals))


def parse_units(amount: Any, decimals: int) -> int:
    return int(Decimal(str(amount)) * (Decimal(10) ** decimals))


def add_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def parse_date(value: Any) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def _sum_role(holders: List[Dict[str, Any]], role: Optional[str] = None) -> float:
    return sum(float(h.get("percentage", 0)) for h in holders if role is None or h.get("role") == role)


class EquityPhantom(BaseAgent):
    def __init__(self):
        super().__init__("equity-phantom", GEMINI_MODELS["EQUITY"])
        self.network = ETHEREUM_NETWORK
        self.rpc_url = ETHEREUM_RPC_URL
        self.w3 = None

    def provider(self) -> Web3:
        if self.w3 is None:
            self.w3 = Web3(Web3.HTTPProvider(self.rpc_url))
        return self.w3

    def _contract(self, token_address: str):
        w3 = self.provider()
        return w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)

    def execute(self, action: str, params: Optional[Dict[str, Any]] = None, firebase_uid: Optional[str] = None) -> Dict[str, Any]:
        params = params or {}
        if action == "getBalance":
            return self.get_equity_balance(params.get("token_address"), params.get("wallet_address"))
        if action == "transfer":
            return self.transfer_equity(firebase_uid=firebase_uid, **params)
        if action == "getTokenInfo":
            return self.get_token_info(params.get("token_address"))
        if action == "getWalletBalance":
            return self.get_wallet_balance(params.get("wallet_address"))
        if action == "getTransactions":
            return self.get_transaction_history(params.get("wallet_address"), params.get("token_address"))
        if action == "getAllocations":
            return self.get_equity_allocations(firebase_uid)
        if action == "setAllocations":
            return self.set_equity_allocations(firebase_uid, params)
        if action == "createVestingSchedule":
            return self.create_vesting_schedule(firebase_uid=firebase_uid, **params)
        if action == "checkVesting":
            return self.check_vesting_status(params)
        if action == "analyzeEquity":
            return self.analyze_equity_distribution(
                params.get("holders") or [], params.get("company_stage"), params.get("funding_round"), firebase_uid
            )
        raise ValueError(f"Unknown action: {action}")

    # ---- chain ----

    def get_equity_balance(self, token_address: str, wallet_address: str) -> Dict[str, Any]:
        try:
            contract = self._contract(token_address)
            balance = contract.functions.balanceOf(Web3.to_checksum_address(wallet_address)).call()
            decimals = contract.functions.decimals().call()
            return {"success": True, "data": {
                "token_address": token_address,
                "wallet_address": wallet_address,
                "balance": format_units(balance, decimals),
                "raw_balance": str(balance),
                "decimals": int(decimals),
                "symbol": contract.functions.symbol().call(),
                "name": contract.functions.name().call(),
            }}
        except Exception as e:
            logger.error("[%s] getBalance failed: %s", self.agent_name, e)
            return {"success": False, "error": str(e)}

    def transfer_equity(self, private_key: str, token_address: str, to_address: str, amount: Any,
                        firebase_uid: Optional[str] = None, **_) -> Dict[str, Any]:
        try:
            w3 = self.provider()
            account = w3.eth.account.from_key(private_key)
            contract = self._contract(token_address)
            to = Web3.to_checksum_address(to_address)

            decimals = contract.functions.decimals().call()
            transfer = contract.functions.transfer(to, parse_units(amount, decimals))
            gas = transfer.estimate_gas({"from": account.address})
            tx = transfer.build_transaction({
                "from": account.address,
                "nonce": w3.eth.get_transaction_count(account.address),
                "gas": gas * 120 // 100,
            })
            signed = account.sign_transaction(tx)
            tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = w3.eth.wait_for_transaction_receipt(tx_hash)
        except Exception as e:
            logger.error("[%s] transfer failed: %s", self.agent_name, e)
            return {"success": False, "error": str(e)}

        data = {
            "tx_hash": receipt["transactionHash"].hex(),
            "block_number": receipt["blockNumber"],
            "gas_used": str(receipt["gasUsed"]),
            "from": account.address,
            "to": to_address,
            "amount": amount,
            "token_address": token_address,
        }
        if firebase_uid and db is not None:
            db["user"].update_one(
                {"firebase_uid": firebase_uid},
                {"$push": {"equity_transfers": {
                    "to": to_address, "amount": float(amount), "tx_hash": data["tx_hash"],
                    "timestamp": datetime.now(timezone.utc),
                }}},
            )
        logger.info("[%s] Transferred %s tokens to %s (%s)", self.agent_name, amount, to_address, data["tx_hash"])
        return {"success": True, "data": data}

    def get_token_info(self, token_address: str) -> Dict[str, Any]:
        try:
            contract = self._contract(token_address)
            decimals = contract.functions.decimals().call()
            return {"success": True, "data": {
                "address": token_address,
                "name": contract.functions.name().call(),
                "symbol": contract.functions.symbol().call(),
                "decimals": int(decimals),
                "total_supply": format_units(contract.functions.totalSupply().call(), decimals),
            }}
        except Exception as e:
            logger.error("[%s] getTokenInfo failed: %s", self.agent_name, e)
            return {"success": False, "error": str(e)}

    def get_wallet_balance(self, address: str) -> Dict[str, Any]:
        try:
            balance = self.provider().eth.get_balance(Web3.to_checksum_address(address))
            return {"success": True, "data": {
                "address": address,
                "balance_wei": str(balance),
                "balance_eth": str(Web3.from_wei(balance, "ether")),
                "network": self.network,
            }}
        except Exception as e:
            logger.error("[%s] getWalletBalance failed: %s", self.agent_name, e)
            return {"success": False, "error": str(e)}

    def get_transaction_history(self, address: str, token_address: str) -> Dict[str, Any]:
        try:
            w3 = self.provider()
            contract = self._contract(token_address)
            owner = Web3.to_checksum_address(address)
            from_block = max(w3.eth.block_number - HISTORY_BLOCKS, 0)

            sent = contract.events.Transfer.get_logs(argument_filters={"from": owner}, from_block=from_block)
            received = contract.events.Transfer.get_logs(argument_filters={"to": owner}, from_block=from_block)
            events = sorted(list(sent) + list(received), key=lambda ev: ev["blockNumber"], reverse=True)[:HISTORY_LIMIT]

            decimals = contract.functions.decimals().call()
            transactions = []
            for ev in events:
                block = w3.eth.get_block(ev["blockNumber"])
                transactions.append({
                    "tx_hash": ev["transactionHash"].hex(),
                    "block_number": ev["blockNumber"],
                    "timestamp": datetime.fromtimestamp(block["timestamp"], tz=timezone.utc),
                    "from": ev["args"]["from"],
                    "to": ev["args"]["to"],
                    "amount": format_units(ev["args"]["value"], decimals),
                    "direction": "out" if ev["args"]["from"].lower() == address.lower() else "in",
                })
            return {"success": True, "data": {
                "address": address,
                "token_address": token_address,
                "transactions": transactions,
                "count": len(transactions),
            }}
        except Exception as e:
            logger.error("[%s] getTransactions failed: %s", self.agent_name, e)
            return {"success": False, "error": str(e)}

    # ---- cap table ----

    def get_equity_allocations(self, firebase_uid: Optional[str]) -> Dict[str, Any]:
        if not firebase_uid:
            return {"success": True, "data": DEMO_ALLOCATIONS}
        user = db["user"].find_one({"firebase_uid": firebase_uid})
        company = (user or {}).get("company")
        if not company:
            return {"success": False, "error": "No company found for user"}

        holders = company.get("equity_holders") or []
        return {"success": True, "data": {
            "company_name": company.get("name", ""),
            "token_address": company.get("equity_token_address"),
            "holders": holders,
            "total_equity": 100,
            "allocated_equity": _sum_role(holders),
        }}

    def set_equity_allocations(self, firebase_uid: Optional[str], params: Dict[str, Any]) -> Dict[str, Any]:
        if not firebase_uid:
            return {"success": False, "error": "firebase_uid is required"}
        try:
            holders = [EquityHolder(**h).model_dump() for h in params.get("holders") or []]
        except Exception as e:
            return {"success": False, "error": f"Invalid holders: {e}"}

        total = _sum_role(holders)
        if total > 100:
            return {"success": False, "error": f"Allocations total {total}% which exceeds 100%"}

        company = {
            "name": params.get("company_name", ""),
            "equity_token_address": params.get("token_address"),
            "equity_holders": holders,
        }
        db["user"].update_one(
            {"firebase_uid": firebase_uid},
            {"$set": {"company": company, "updated_at": datetime.now(timezone.utc)}},
            upsert=True,
        )
        return self.get_equity_allocations(firebase_uid)

    # ---- vesting ----

    def create_vesting_schedule(self, beneficiary: str, total_amount: float, start_date: Any,
                                cliff_months: int = 12, vesting_months: int = 48,
                                token_address: Optional[str] = None, firebase_uid: Optional[str] = None,
                                now: Optional[datetime] = None, **_) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        try:
            start = parse_date(start_date)
            schedule = VestingSchedule(
                firebase_uid=firebase_uid,
                beneficiary=beneficiary,
                total_amount=total_amount,
                token_address=token_address,
                start_date=start,
                cliff_date=add_months(start, cliff_months),
                end_date=add_months(start, vesting_months),
                cliff_months=cliff_months,
                vesting_months=vesting_months,
            ).model_dump()
        except Exception as e:
            return {"success": False, "error": str(e)}

        monthly = schedule["total_amount"] / vesting_months
        milestones = []
        for month in range(1, vesting_months + 1):
            vest_date = add_months(start, month)
            milestones.append({
                "month": month,
                "date": vest_date,
                "amount": monthly,
                "cumulative": monthly * month,
                "is_cliff": month == cliff_months,
                "is_past": vest_date < now,
            })

        if db is not None:
            schedule["created_at"] = now
            schedule["_id"] = db["vestingschedule"].insert_one(dict(schedule)).inserted_id

        return {"success": True, "data": {
            "schedule": serialize_doc(schedule),
            "milestones": milestones,
            "message": (
                f"Vesting schedule created: {total_amount} tokens over {vesting_months} months "
                f"with {cliff_months} month cliff"
            ),
        }}

    def check_vesting_status(self, params: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        schedule = None
        if params.get("schedule_id") and db is not None:
            oid = to_object_id(params["schedule_id"])
            schedule = db["vestingschedule"].find_one({"_id": oid}) if oid else None
            if schedule is None:
                return {"success": False, "error": "Vesting schedule not found"}
        if schedule is None:
            schedule = {k: params.get(k) if params.get(k) is not None else v for k, v in DEFAULT_VESTING.items()}

        try:
            start = parse_date(schedule["start_date"])
            total = float(schedule["total_amount"])
            cliff_months = int(schedule["cliff_months"])
            vesting_months = int(schedule["vesting_months"])
            claimed = float(schedule.get("claimed_amount") or 0)
            if vesting_months < 1:
                raise ValueError("vesting_months must be at least 1")
            if total <= 0:
                raise ValueError("total_amount must be positive")
        except (KeyError, TypeError, ValueError) as e:
            return {"success": False, "error": f"Invalid vesting parameters: {e}"}

        cliff_date = add_months(start, cliff_months)
        if now < cliff_date:
            days = (cliff_date - now).total_seconds() / 86400
            return {"success": True, "data": {
                "vested_amount": 0,
                "available_to_claim": 0,
                "claimed_amount": claimed,
                "cliff_date": cliff_date,
                "days_until_cliff": math.ceil(days),
                "status": "cliff_pending",
            }}

        months_elapsed = min(int((now - start).days // 30), vesting_months)
        vested = total / vesting_months * months_elapsed
        return {"success": True, "data": {
            "vested_amount": vested,
            "available_to_claim": vested - claimed,
            "claimed_amount": claimed,
            "percent_vested": vested / total * 100,
            "months_elapsed": months_elapsed,
            "months_remaining": vesting_months - months_elapsed,
            "status": "fully_vested" if months_elapsed >= vesting_months else "vesting",
        }}

    # ---- analysis ----

    def analyze_equity_distribution(self, holders: List[Dict[str, Any]], company_stage: Optional[str] = None,
                                    funding_round: Optional[str] = None,
                                    firebase_uid: Optional[str] = None) -> Dict[str, Any]:
        table = "\n".join(f"- {h.get('name')} ({h.get('role')}): {h.get('percentage')}%" for h in holders)
        prompt = f"""You are an equity distribution expert for startups. Analyze the following equity cap table and provide recommendations.

Company Stage: {company_stage or 'Seed'}
Current Funding Round: {funding_round or 'Pre-seed'}

Current Equity Distribution:
{table}

Please provide:
1. Assessment of current distribution
2. Industry benchmark comparison
3. Potential issues or red flags
4. Recommendations for the next funding round
5. ESOP pool suggestions
6. Vesting schedule recommendations

Format your response in a clear, structured way."""

        try:
            text, usage = self.generate(prompt)
        except Exception as e:
            return {"success": False, "error": str(e)}
        if firebase_uid:
            self.log_usage(firebase_uid, usage["total_tokens"], usage["cost"])

        total = _sum_role(holders)
        return {"success": True, "data": {
            "analysis": text,
            "summary": {
                "total_allocated": total,
                "founder_equity": _sum_role(holders, "founder"),
                "investor_equity": _sum_role(holders, "investor"),
                "employee_pool": _sum_role(holders, "esop"),
                "unallocated": 100 - total,
            },
        }}
