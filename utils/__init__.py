"""NFT Staking Rewards Engine - Utilities"""
