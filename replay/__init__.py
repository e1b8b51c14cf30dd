"""
Procedure replay.
Runs recorded, analysed procedures as ordered tool steps (filesystem,
spreadsheet, web, shell) with per-step failure policies.
"""
