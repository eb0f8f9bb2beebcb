"""vaultstrap - Azure Key Vault bootstrap CLI for Spinnaker deployments

Philosophy:
- Idempotent steps (safe to re-run after any failure)
- Remote state is the source of truth (nothing cached across runs)
- Secret values are never logged
- Fail fast with the failing step's exit code

vaultstrap creates the resource group, registers the Key Vault provider,
creates the vault, stores the VM bootstrap credentials and grants a
service principal read access to them.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
