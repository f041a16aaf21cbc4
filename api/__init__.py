"""HTTP API для NFT Staking Rewards Engine"""
