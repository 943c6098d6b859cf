"""
LangGraph StateGraph for account provisioning.

Graph topology:
  START
    → load_account
    → [conditional: unprovisioned → register_account → END]
                    existing      → validate_account → END

Nodes are bound methods of an AccountProvisioner so that the store, the
directory client and the account key never pass through graph state.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from langgraph.graph import END, START, StateGraph

from provisioning.state import AccountState, ProvisioningPhase

if TYPE_CHECKING:
    from provisioning.provisioner import AccountProvisioner


def account_router(state: AccountState) -> str:
    """
    Routing function for add_conditional_edges() after load_account.

    Returns: "unprovisioned" | "existing"
    """
    if state["phase"] == ProvisioningPhase.UNPROVISIONED:
        return "unprovisioned"
    return "existing"


def build_graph(provisioner: "AccountProvisioner"):
    """Build and compile the provisioning StateGraph for *provisioner*."""
    builder = StateGraph(AccountState)

    builder.add_node("load_account", provisioner.load_account)
    builder.add_node("register_account", provisioner.register_account)
    builder.add_node("validate_account", provisioner.validate_account)

    builder.add_edge(START, "load_account")
    builder.add_conditional_edges(
        "load_account",
        account_router,
        {
            "unprovisioned": "register_account",
            "existing": "validate_account",
        },
    )
    builder.add_edge("register_account", END)
    builder.add_edge("validate_account", END)

    return builder.compile()
