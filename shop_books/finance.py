"""
Cash Accounts Module

Named cash buckets (Shop, Bank, Home, Equity) and the transactions that
move money between them. Stored balances are kept in step with the
transaction list, so every balance can be re-derived by folding the
transactions and checked with reconcile().
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid
import logging

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord, RecordNotFoundError, ACCOUNTS, TRANSACTIONS
from .logging_config import log_action


logger = logging.getLogger("shop_books.finance")


class AccountType(Enum):
    """Cash buckets"""
    SHOP = "shop"      # Till / cash in the shop
    BANK = "bank"
    HOME = "home"
    EQUITY = "equity"  # Owner's equity


class TransactionType(Enum):
    """Kinds of cash movement"""
    EXPENSE = "expense"
    TRANSFER = "transfer"
    DEPOSIT = "deposit"
    SALE = "sale"                      # Cash sale, owned by the sales ledger
    CREDIT_PAYMENT = "credit_payment"  # Udhaar receipt, owned by the credit ledger


# Entries written by other ledgers; they are removed through those ledgers
LEDGER_OWNED_TYPES = {TransactionType.SALE, TransactionType.CREDIT_PAYMENT}

DEFAULT_ACCOUNTS = [
    ("1", "Shop", AccountType.SHOP),
    ("2", "Bank", AccountType.BANK),
    ("3", "Home", AccountType.HOME),
    ("4", "Equity", AccountType.EQUITY),
]


class InsufficientBalanceError(ValueError):
    """Raised when an account cannot cover an outgoing amount"""
    pass


@dataclass
class Account(StorageRecord):
    """A named cash bucket"""
    name: str
    account_type: AccountType
    balance: Money


@dataclass
class Transaction(StorageRecord):
    """
    A single cash movement
    """
    date: date
    transaction_type: TransactionType
    amount: Money
    category: str
    description: str
    from_account: Optional[AccountType] = None
    to_account: Optional[AccountType] = None
    reference: Optional[str] = None  # Sale ID or payment ID for ledger-owned entries

    def __post_init__(self):
        if not self.amount.is_positive():
            raise ValueError("Transaction amount must be positive")

        if self.transaction_type == TransactionType.EXPENSE and not self.from_account:
            raise ValueError("Expense requires a source account")
        if self.transaction_type == TransactionType.TRANSFER:
            if not self.from_account or not self.to_account:
                raise ValueError("Transfer requires source and destination accounts")
            if self.from_account == self.to_account:
                raise ValueError("Cannot transfer to the same account")
        if self.transaction_type in (TransactionType.DEPOSIT, TransactionType.SALE,
                                     TransactionType.CREDIT_PAYMENT) and not self.to_account:
            raise ValueError(f"{self.transaction_type.value} requires a destination account")

    def balance_effects(self) -> Dict[AccountType, Money]:
        """Signed effect of this transaction on each account it touches"""
        effects = {}
        if self.from_account:
            effects[self.from_account] = -self.amount
        if self.to_account:
            effects[self.to_account] = self.amount
        return effects


class CashBook:
    """
    Manages cash accounts and the transaction list behind their balances
    """

    def __init__(self, storage: StorageInterface, currency: Currency = Currency.PKR):
        self.storage = storage
        self.currency = currency
        self.accounts_table = ACCOUNTS
        self.transactions_table = TRANSACTIONS

    def initialize_accounts(self) -> List[Account]:
        """Create the default accounts when none exist"""
        if self.storage.count(self.accounts_table) == 0:
            now = datetime.now()
            with self.storage.atomic():
                for account_id, name, account_type in DEFAULT_ACCOUNTS:
                    self._save_account(Account(
                        id=account_id,
                        created_at=now,
                        updated_at=now,
                        name=name,
                        account_type=account_type,
                        balance=Money.zero(self.currency)
                    ))
            logger.info("Default cash accounts created")
        return self.get_accounts()

    def get_accounts(self) -> List[Account]:
        accounts = [self._account_from_dict(d) for d in self.storage.load_all(self.accounts_table)]
        accounts.sort(key=lambda a: a.id)
        return accounts

    def get_account(self, account_type: AccountType) -> Account:
        """Get the account of a given type, creating the defaults on first use"""
        for account in self.initialize_accounts():
            if account.account_type == account_type:
                return account
        raise RecordNotFoundError(f"No {account_type.value} account")

    def get_balance(self, account_type: AccountType) -> Money:
        return self.get_account(account_type).balance

    def record_expense(
        self,
        expense_date: date,
        amount: Money,
        category: str,
        from_account: AccountType = AccountType.SHOP,
        description: str = ""
    ) -> Transaction:
        """
        Record money spent from an account

        Raises:
            InsufficientBalanceError: If the account balance is below the amount
        """
        transaction = self._new_transaction(
            expense_date, TransactionType.EXPENSE, amount, category, description,
            from_account=from_account
        )
        self._post(transaction)
        return transaction

    def record_transfer(
        self,
        transfer_date: date,
        amount: Money,
        from_account: AccountType,
        to_account: AccountType,
        description: str = ""
    ) -> Transaction:
        """Move money between two accounts"""
        transaction = self._new_transaction(
            transfer_date, TransactionType.TRANSFER, amount, "Transfer", description,
            from_account=from_account, to_account=to_account
        )
        self._post(transaction)
        return transaction

    def record_deposit(
        self,
        deposit_date: date,
        amount: Money,
        to_account: AccountType = AccountType.SHOP,
        description: str = ""
    ) -> Transaction:
        """Add money to an account from outside the business"""
        transaction = self._new_transaction(
            deposit_date, TransactionType.DEPOSIT, amount, "deposit", description,
            to_account=to_account
        )
        self._post(transaction)
        return transaction

    def delete_transaction(self, transaction_id: str) -> Transaction:
        """
        Delete an expense, transfer or deposit and reverse its balance effect

        Sale and credit-payment entries belong to the sales and credit
        ledgers and are removed by deleting the sale or reversing the payment.
        """
        transaction = self.get_transaction(transaction_id)
        if not transaction:
            raise RecordNotFoundError(f"Transaction {transaction_id} not found")
        if transaction.transaction_type in LEDGER_OWNED_TYPES:
            raise ValueError(
                f"{transaction.transaction_type.value} entries are managed by their own ledger"
            )
        self._unpost(transaction)
        return transaction

    def post_sale(self, sale_id: str, amount: Money, sale_date: date, description: str = "") -> Transaction:
        """Credit the Shop account for a cash sale"""
        transaction = self._new_transaction(
            sale_date, TransactionType.SALE, amount, "sale", description or f"Cash sale {sale_id}",
            to_account=AccountType.SHOP, reference=sale_id
        )
        self._post(transaction)
        return transaction

    def unpost_sale(self, sale_id: str) -> Money:
        """Remove the cash entries of a sale; returns the amount taken back out of Shop"""
        return self._unpost_reference(TransactionType.SALE, sale_id)

    def post_credit_payment(
        self,
        payment_id: str,
        amount: Money,
        payment_date: date,
        customer_name: str
    ) -> Transaction:
        """Credit the Shop account for money received against Udhaar"""
        transaction = self._new_transaction(
            payment_date, TransactionType.CREDIT_PAYMENT, amount, "credit_payment",
            f"Payment received from {customer_name}",
            to_account=AccountType.SHOP, reference=payment_id
        )
        self._post(transaction)
        return transaction

    def unpost_credit_payment(self, payment_id: str) -> Money:
        return self._unpost_reference(TransactionType.CREDIT_PAYMENT, payment_id)

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        data = self.storage.load(self.transactions_table, transaction_id)
        if data:
            return self._transaction_from_dict(data)
        return None

    def list_transactions(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        transaction_type: Optional[TransactionType] = None
    ) -> List[Transaction]:
        """Transactions newest first, optionally within inclusive date bounds"""
        transactions = []
        for data in self.storage.load_all(self.transactions_table):
            transaction = self._transaction_from_dict(data)
            if start_date and transaction.date < start_date:
                continue
            if end_date and transaction.date > end_date:
                continue
            if transaction_type and transaction.transaction_type != transaction_type:
                continue
            transactions.append(transaction)

        transactions.sort(key=lambda t: (t.date, t.created_at), reverse=True)
        return transactions

    def reconcile(self) -> Dict[str, Dict[str, Any]]:
        """
        Re-derive every balance from the transaction list

        Returns:
            Per account type: stored balance, derived balance, difference
            and whether they agree
        """
        derived = {a.account_type: Money.zero(self.currency) for a in self.initialize_accounts()}
        for data in self.storage.load_all(self.transactions_table):
            transaction = self._transaction_from_dict(data)
            for account_type, effect in transaction.balance_effects().items():
                derived[account_type] = derived.get(account_type, Money.zero(self.currency)) + effect

        report = {}
        for account in self.get_accounts():
            expected = derived.get(account.account_type, Money.zero(self.currency))
            difference = account.balance - expected
            report[account.account_type.value] = {
                "stored": account.balance,
                "derived": expected,
                "difference": difference,
                "balanced": difference.is_zero()
            }
            if not difference.is_zero():
                logger.warning(
                    f"Account {account.name} out of balance by {difference.to_string()}"
                )
        return report

    def _new_transaction(
        self,
        transaction_date: date,
        transaction_type: TransactionType,
        amount: Money,
        category: str,
        description: str,
        from_account: Optional[AccountType] = None,
        to_account: Optional[AccountType] = None,
        reference: Optional[str] = None
    ) -> Transaction:
        if amount.currency != self.currency:
            raise ValueError(f"Amount must be in {self.currency.code}")
        now = datetime.now()
        return Transaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            date=transaction_date,
            transaction_type=transaction_type,
            amount=amount,
            category=category,
            description=description,
            from_account=from_account,
            to_account=to_account,
            reference=reference
        )

    def _post(self, transaction: Transaction) -> None:
        """Apply balance effects and store the transaction"""
        with self.storage.atomic():
            accounts = {a.account_type: a for a in self.initialize_accounts()}

            if transaction.from_account:
                source = accounts[transaction.from_account]
                if source.balance < transaction.amount:
                    raise InsufficientBalanceError(
                        f"Insufficient balance in {source.name}: "
                        f"{source.balance.to_string()} available, {transaction.amount.to_string()} needed"
                    )

            for account_type, effect in transaction.balance_effects().items():
                account = accounts[account_type]
                account.balance = account.balance + effect
                account.updated_at = datetime.now()
                self._save_account(account)

            self.storage.save(
                self.transactions_table, transaction.id, self._transaction_to_dict(transaction)
            )

        log_action(
            logger, "info", f"{transaction.transaction_type.value} of {transaction.amount.to_string()} posted",
            action=f"{transaction.transaction_type.value}_posted", resource="transaction",
            resource_id=transaction.id,
            extra={"reference": transaction.reference, "category": transaction.category}
        )

    def _unpost(self, transaction: Transaction) -> None:
        """Reverse balance effects and remove the transaction"""
        with self.storage.atomic():
            accounts = {a.account_type: a for a in self.initialize_accounts()}
            for account_type, effect in transaction.balance_effects().items():
                account = accounts[account_type]
                account.balance = account.balance - effect
                account.updated_at = datetime.now()
                self._save_account(account)
            self.storage.delete(self.transactions_table, transaction.id)

        log_action(
            logger, "info", f"{transaction.transaction_type.value} of {transaction.amount.to_string()} reversed",
            action=f"{transaction.transaction_type.value}_reversed", resource="transaction",
            resource_id=transaction.id, extra={"reference": transaction.reference}
        )

    def _unpost_reference(self, transaction_type: TransactionType, reference: str) -> Money:
        total = Money.zero(self.currency)
        matches = self.storage.find(self.transactions_table, {
            "transaction_type": transaction_type.value,
            "reference": reference
        })
        with self.storage.atomic():
            for data in matches:
                transaction = self._transaction_from_dict(data)
                self._unpost(transaction)
                total = total + transaction.amount
        return total

    def _save_account(self, account: Account) -> None:
        self.storage.save(self.accounts_table, account.id, {
            'id': account.id,
            'created_at': account.created_at.isoformat(),
            'updated_at': account.updated_at.isoformat(),
            'name': account.name,
            'account_type': account.account_type.value,
            'balance': str(account.balance.amount),
            'currency': account.balance.currency.code
        })

    def _account_from_dict(self, data: Dict) -> Account:
        return Account(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            name=data['name'],
            account_type=AccountType(data['account_type']),
            balance=Money(Decimal(data['balance']), Currency[data.get('currency', self.currency.code)])
        )

    def _transaction_to_dict(self, transaction: Transaction) -> Dict:
        return {
            'id': transaction.id,
            'created_at': transaction.created_at.isoformat(),
            'updated_at': transaction.updated_at.isoformat(),
            'date': transaction.date.isoformat(),
            'transaction_type': transaction.transaction_type.value,
            'amount': str(transaction.amount.amount),
            'currency': transaction.amount.currency.code,
            'category': transaction.category,
            'description': transaction.description,
            'from_account': transaction.from_account.value if transaction.from_account else None,
            'to_account': transaction.to_account.value if transaction.to_account else None,
            'reference': transaction.reference
        }

    def _transaction_from_dict(self, data: Dict) -> Transaction:
        return Transaction(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            date=date.fromisoformat(data['date']),
            transaction_type=TransactionType(data['transaction_type']),
            amount=Money(Decimal(data['amount']), Currency[data.get('currency', self.currency.code)]),
            category=data.get('category', ''),
            description=data.get('description', ''),
            from_account=AccountType(data['from_account']) if data.get('from_account') else None,
            to_account=AccountType(data['to_account']) if data.get('to_account') else None,
            reference=data.get('reference')
        )
