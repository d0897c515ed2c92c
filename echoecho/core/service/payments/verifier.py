"""USDC payment verification on Base."""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel
from web3 import Web3
from eth_utils import is_address

from echoecho.core.exceptions.entitlement import InvalidAddressError, PaymentVerificationError
from echoecho.core.exceptions.handler import ServiceError, ServiceErrorCode
from echoecho.core.logger.logger import get_logger
from echoecho.core.service.entitlement.validators import validate_tx_hash

logger = get_logger(__name__)

# keccak256("Transfer(address,address,uint256)")
TRANSFER_EVENT_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
USDC_DECIMALS = 6

USDC_BALANCE_ABI = [
    {
        "name": "balanceOf",
        "type": "function",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "balance", "type": "uint256"}],
        "stateMutability": "view",
    },
]


class VerifiedPayment(BaseModel):
    """Payment facts read from a successful on-chain transfer"""
    tx_hash: str
    payer: str
    payee: str
    amount_usdc: Decimal


class UsdcBalance(BaseModel):
    address: str
    balance: Decimal
    network: str = "base"
    contract: str


class PaymentVerifier(ABC):
    """Oracle that turns a transaction hash into a verified payment"""

    @abstractmethod
    async def verify(self, tx_hash: str) -> VerifiedPayment:
        """Raises PaymentVerificationError if the transaction is not a valid USDC transfer"""

    @abstractmethod
    async def get_usdc_balance(self, address: str) -> UsdcBalance:
        ...


def _to_hex(value) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value)
    return text if text.startswith("0x") else "0x" + text


def _topic_to_address(topic) -> str:
    """Indexed address topics are left-padded to 32 bytes"""
    return "0x" + _to_hex(topic)[-40:].lower()


class UsdcReceiptVerifier(PaymentVerifier):
    """Reads the transaction receipt from a Base RPC node and decodes the USDC Transfer log."""

    def __init__(self, rpc_url: str, usdc_contract: str):
        self.rpc_url = rpc_url
        self.usdc_contract = usdc_contract
        self._w3: Optional[Web3] = None

    def _web3(self) -> Web3:
        if self._w3 is None:
            self._w3 = Web3(Web3.HTTPProvider(self.rpc_url))
        return self._w3

    async def verify(self, tx_hash: str) -> VerifiedPayment:
        validate_tx_hash(tx_hash)
        w3 = self._web3()

        try:
            receipt = w3.eth.get_transaction_receipt(tx_hash)
        except Exception as e:
            logger.error(
                "Failed to fetch transaction receipt",
                extra={"transaction_hash": tx_hash, "error": str(e)}
            )
            raise PaymentVerificationError("Invalid or failed transaction", details={"transaction_hash": tx_hash})

        if not receipt or receipt.get("status") != 1:
            raise PaymentVerificationError("Invalid or failed transaction", details={"transaction_hash": tx_hash})

        usdc = self.usdc_contract.lower()
        for log in receipt.get("logs", []):
            topics = log.get("topics", [])
            if (
                str(log.get("address", "")).lower() == usdc
                and len(topics) >= 3
                and _to_hex(topics[0]).lower() == TRANSFER_EVENT_TOPIC
            ):
                try:
                    raw_value = int(_to_hex(log.get("data")), 16)
                except ValueError:
                    logger.error(
                        "Malformed USDC transfer log data",
                        extra={"transaction_hash": tx_hash, "data": str(log.get("data"))}
                    )
                    raise PaymentVerificationError(
                        "Malformed USDC transfer log",
                        details={"transaction_hash": tx_hash}
                    )
                payment = VerifiedPayment(
                    tx_hash=tx_hash,
                    payer=_topic_to_address(topics[1]),
                    payee=_topic_to_address(topics[2]),
                    amount_usdc=Decimal(raw_value).scaleb(-USDC_DECIMALS)
                )
                logger.info(
                    "USDC transfer verified",
                    extra={
                        "transaction_hash": tx_hash,
                        "payer": payment.payer,
                        "payee": payment.payee,
                        "amount_usdc": str(payment.amount_usdc)
                    }
                )
                return payment

        raise PaymentVerificationError("No USDC transfer found in transaction", details={"transaction_hash": tx_hash})

    async def get_usdc_balance(self, address: str) -> UsdcBalance:
        if not is_address(address):
            raise InvalidAddressError(address)
        w3 = self._web3()
        try:
            contract = w3.eth.contract(
                address=Web3.to_checksum_address(self.usdc_contract),
                abi=USDC_BALANCE_ABI
            )
            raw_balance = contract.functions.balanceOf(Web3.to_checksum_address(address)).call()
        except Exception as e:
            logger.error("USDC balance lookup failed", extra={"address": address, "error": str(e)})
            raise ServiceError(
                code=ServiceErrorCode.RPC_ERROR,
                message="Failed to check USDC balance",
                status_code=502
            )
        return UsdcBalance(
            address=address.lower(),
            balance=Decimal(raw_balance).scaleb(-USDC_DECIMALS),
            contract=self.usdc_contract
        )
