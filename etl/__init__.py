# WORKFLOW: ETL package for Flex pullsheet decoding and flattening.
# Used by: Import orchestrator, parse script
# Modules include:
# 1. flex_parser.py - Decode Flex row-data and flatten it into racks and loose equipment
# 2. validators.py - Reference and naming checks on the flattened result
#
# ETL flow: Flex JSON -> Decode -> Classify -> Flatten -> Validate -> Import orchestrator

"""
ETL package for Flex pullsheet ingestion.
"""
