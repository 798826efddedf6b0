"""
Alliance DAO NFT Flow API.

Keeps an in-memory view of the Alliance DAO NFT collection fresh by merging
static metadata with on-chain status, deriving market activity (listings and
sales) and staking metrics from refresh to refresh, and serving the result
over HTTP.
"""

__version__ = "0.1.0"
