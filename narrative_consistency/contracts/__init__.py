"""
Contracts Module

Immutable data shapes shared by every layer of the consistency engine.
All inter-layer communication MUST use these contracts.

DESIGN PRINCIPLES:
==================
1. Value types are frozen dataclasses with tuple collections
2. Errors are data (Error, ErrorCode, Result), never silent
3. Node and edge ids are deterministic functions of their inputs
4. Input contracts parse the collaborator's camelCase JSON via from_dict
5. Output contracts serialize back to camelCase via to_dict
"""
