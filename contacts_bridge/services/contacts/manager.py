"""
Contacts Account Manager

Manages named contacts accounts and backend instances, and runs every
backend call on a worker thread so the event loop never blocks on the
native store.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Type

from contacts_bridge.config import ACCOUNTS_CONFIG, DEFAULT_ACCOUNTS, get_user_settings

from .adapters import ADAPTERS
from .builder import RecordBuilder
from .interface import (
    ContactRecord, ContactsAccount, ContactsBackend, NoContextError, PermissionPrompter,
    PropertyGroup, policy_prompter,
)
from .query import QueryEngine, make_sort_key

logger = logging.getLogger(__name__)


class ContactsManager:
    """Manages contacts accounts and backend instances."""

    def __init__(
        self,
        config_path: Optional[Path] = None,
        settings: Optional[Dict[str, Any]] = None,
        prompter: Optional[PermissionPrompter] = None
    ):
        self.config_path = config_path or ACCOUNTS_CONFIG
        self.settings = settings if settings is not None else get_user_settings()
        self.prompter = prompter
        self.accounts: Dict[str, ContactsAccount] = {}
        self.adapters: Dict[str, ContactsBackend] = {}
        self.adapter_classes: Dict[str, Type[ContactsBackend]] = {}
        self.default_account: Optional[str] = None
        self._queries: Dict[str, QueryEngine] = {}
        self._builders: Dict[str, RecordBuilder] = {}
        self._connect_lock = asyncio.Lock()
        self.sort_key = make_sort_key(self.settings.get("collation_locale"))

        for adapter_type, adapter_class in ADAPTERS.items():
            self.register_adapter_type(adapter_type, adapter_class)
        self._load_accounts()

    def register_adapter_type(self, adapter_type: str, adapter_class: Type[ContactsBackend]) -> None:
        """Register a backend implementation."""
        self.adapter_classes[adapter_type] = adapter_class
        logger.info(f"✅ Registered contacts adapter: {adapter_type}")

    def _load_accounts(self) -> None:
        """Load accounts from config file, falling back to the built-in defaults."""
        config = DEFAULT_ACCOUNTS
        if self.config_path.exists():
            try:
                config = json.loads(self.config_path.read_text())
            except (OSError, ValueError) as e:
                logger.error(f"❌ Failed to load accounts: {e}")
                return
        else:
            logger.info("No contacts accounts config found, using defaults")

        for name, data in config.get("accounts", {}).items():
            self.accounts[name] = ContactsAccount(
                name=name,
                adapter=data.get("adapter", ""),
                config=data.get("config", {})
            )
        self.default_account = (
            config.get("default_account")
            or self.settings.get("default_account")
            or next(iter(self.accounts), None)
        )
        logger.info(f"✅ Loaded {len(self.accounts)} contacts accounts")

    def _save_accounts(self) -> None:
        """Save accounts to config file."""
        config: Dict[str, Any] = {"accounts": {}, "default_account": self.default_account}
        for name, account in self.accounts.items():
            config["accounts"][name] = {
                "adapter": account.adapter,
                "config": account.config
            }

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(json.dumps(config, indent=2))

    def add_account(self, name: str, adapter: str, config: Optional[Dict] = None) -> str:
        """Add a new contacts account."""
        if name in self.accounts:
            return f"❌ Account '{name}' already exists"

        if adapter not in self.adapter_classes:
            available = ", ".join(self.adapter_classes.keys()) or "none"
            return f"❌ Unknown adapter '{adapter}'. Available: {available}"

        self.accounts[name] = ContactsAccount(name=name, adapter=adapter, config=config or {})
        if self.default_account is None:
            self.default_account = name
        self._save_accounts()

        return f"✅ Added contacts account: {name} ({adapter})"

    def remove_account(self, name: str) -> str:
        """Remove a contacts account."""
        if name not in self.accounts:
            return f"❌ Account '{name}' not found"

        adapter = self.adapters.pop(name, None)
        if adapter is not None:
            adapter.disconnect()
        self._queries.pop(name, None)
        self._builders.pop(name, None)

        del self.accounts[name]
        if self.default_account == name:
            self.default_account = next(iter(self.accounts), None)
        self._save_accounts()

        return f"✅ Removed contacts account: {name}"

    def list_accounts(self) -> str:
        """List all configured accounts."""
        if not self.accounts:
            return "👤 No contacts accounts configured"

        lines = ["👤 Contacts Accounts", "─" * 40]
        for name, account in self.accounts.items():
            connected = "🟢" if name in self.adapters else "⚪"
            default = " (default)" if name == self.default_account else ""
            lines.append(f"{connected} {name} ({account.adapter}){default}")

        return "\n".join(lines)

    def _prompter_for(self, account: ContactsAccount) -> Optional[PermissionPrompter]:
        policy = account.config.get("prompt_policy")
        if policy:
            return policy_prompter(policy)
        return self.prompter

    async def get_adapter(self, account_name: Optional[str] = None) -> ContactsBackend:
        """
        Get or create the backend for an account.

        Raises:
            NoContextError: If the account is unknown or its store can't be opened
        """
        account_name = account_name or self.default_account
        if not account_name or account_name not in self.accounts:
            raise NoContextError(f"Contacts account not found: {account_name}")

        if account_name in self.adapters:
            return self.adapters[account_name]

        async with self._connect_lock:
            if account_name not in self.adapters:
                await self._connect(account_name)
        return self.adapters[account_name]

    async def _connect(self, account_name: str) -> None:
        account = self.accounts[account_name]

        if account.adapter not in self.adapter_classes:
            raise NoContextError(f"Adapter not registered: {account.adapter}")

        adapter_class = self.adapter_classes[account.adapter]
        adapter = adapter_class(account, self._prompter_for(account))

        if not await asyncio.to_thread(adapter.connect):
            raise NoContextError(f"Could not open contacts store for account: {account_name}")

        query = QueryEngine(adapter, sort_key=self.sort_key)
        self._queries[account_name] = query
        self._builders[account_name] = RecordBuilder(adapter, query)
        self.adapters[account_name] = adapter

    async def _run(
        self,
        account_name: Optional[str],
        write: Optional[bool],
        call: Callable[[ContactsBackend], Any]
    ) -> Any:
        """Check access (unless write is None) and run `call` off the event loop."""
        adapter = await self.get_adapter(account_name)

        def work():
            if write is not None:
                adapter.check_access(write=write)
            return call(adapter)

        return await asyncio.to_thread(work)

    def _query(self, adapter: ContactsBackend) -> QueryEngine:
        return self._queries[adapter.account.name]

    def _builder(self, adapter: ContactsBackend) -> RecordBuilder:
        return self._builders[adapter.account.name]

    # Permissions

    async def permission_status(self, account_name: Optional[str] = None) -> str:
        return await self._run(account_name, None, lambda a: a.permission_status())

    async def request_permission(self, read_only: bool = False, account_name: Optional[str] = None) -> str:
        return await self._run(account_name, None, lambda a: a.request_permission(read_only))

    # Reads

    async def get_all_contacts(
        self,
        groups: FrozenSet[PropertyGroup],
        sorted: bool = True,
        account_name: Optional[str] = None
    ) -> List[ContactRecord]:
        return await self._run(account_name, False, lambda a: self._query(a).list_all(groups, sorted))

    async def get_contact(
        self,
        contact_id: str,
        groups: FrozenSet[PropertyGroup],
        account_name: Optional[str] = None
    ) -> Optional[ContactRecord]:
        return await self._run(account_name, False, lambda a: self._query(a).get_by_id(contact_id, groups))

    async def search_contacts(
        self,
        text: str,
        groups: FrozenSet[PropertyGroup],
        sorted: bool = True,
        account_name: Optional[str] = None
    ) -> List[ContactRecord]:
        return await self._run(account_name, False, lambda a: self._query(a).search(text, groups, sorted))

    # Writes

    async def create_contact(self, record: ContactRecord, account_name: Optional[str] = None) -> ContactRecord:
        return await self._run(account_name, True, lambda a: self._builder(a).create(record))

    async def update_contact(self, record: ContactRecord, account_name: Optional[str] = None) -> ContactRecord:
        return await self._run(account_name, True, lambda a: self._builder(a).update(record))

    async def delete_contact(self, contact_id: str, account_name: Optional[str] = None) -> None:
        await self._run(account_name, True, lambda a: self._builder(a).delete(contact_id))
