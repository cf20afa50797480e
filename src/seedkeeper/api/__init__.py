# Seedkeeper - Local REST API
# FastAPI routes over the WalletVault facade, guarded by a per-process token.
