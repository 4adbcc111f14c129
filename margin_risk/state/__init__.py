"""Pool state, position and ledger models"""
