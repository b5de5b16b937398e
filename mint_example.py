#!/usr/bin/env python3
import asyncio
import os

import httpx
from dotenv import load_dotenv


async def main():
    load_dotenv()
    BASE_URL = os.getenv("API_URL", "http://localhost:3000")

    print("--- Solana NFT Mint API example ---")
    print(f"Using API at: {BASE_URL}")

    async with httpx.AsyncClient(base_url=BASE_URL, timeout=120.0) as client:
        print("Checking API health...")
        try:
            health_response = await client.get("/health")
            health_response.raise_for_status()
            health = health_response.json()
            print(f"API is healthy: {health['status']} (network: {health['network']})")
        except (httpx.RequestError, httpx.HTTPStatusError) as e:
            print(f"ERROR: Could not connect to the API at {BASE_URL}.")
            print(f"Details: {e}")
            return

        print("--- Minting NFT ---")
        mint_payload = {
            "name": "Example NFT #1",
            "symbol": "ENFT",
            "description": "This is an example NFT created via the API",
            "image": "https://arweave.net/example-image.png",
            "attributes": [
                {"trait_type": "Color", "value": "Blue"},
                {"trait_type": "Rarity", "value": "Common"},
                {"trait_type": "Level", "value": 1},
            ],
            "sellerFeeBasisPoints": 500,
        }
        response = await client.post("/api/nft/mint", json=mint_payload)
        if response.status_code != 201:
            print(f"Mint failed ({response.status_code}): {response.text}")
            return
        minted = response.json()["data"]
        print(f"Minted: {minted['mintAddress']}")
        print(f"Collection: {minted['collectionAddress']}")
        print(f"Transaction: {minted['transactionSignature']}")

        print("--- Updating NFT ---")
        update_payload = {
            "name": "Updated Example NFT",
            "attributes": [
                {"trait_type": "Color", "value": "Red"},
                {"trait_type": "Level", "value": 2},
            ],
        }
        response = await client.put(f"/api/nft/{minted['mintAddress']}", json=update_payload)
        if response.status_code != 200:
            print(f"Update failed ({response.status_code}): {response.text}")
            return
        updated = response.json()["data"]
        print(f"Update transaction: {updated['transactionSignature']}")
        print(f"Updated fields: {updated['updatedFields']}")

        print("--- Fetching NFT ---")
        response = await client.get(f"/api/nft/{minted['mintAddress']}")
        if response.status_code == 200:
            print(response.json()["data"])
        else:
            print(f"Fetch failed ({response.status_code}): {response.text}")


if __name__ == "__main__":
    asyncio.run(main())
