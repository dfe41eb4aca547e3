"""Example of batch matching disruptions with centreline-match."""

import asyncio

import pandas as pd

from centreline_match import CentrelineMatcher, MatchPolicy

# Create sample data
df = pd.DataFrame(
    {
        "external_id": ["rd-1", "rd-2", "rd-3", "rd-4"],
        "title": [
            "Lane closure on King St W",
            "Road closure between Bathurst and Spadina",
            "Emergency Repairs Dundas St W",
            "subway delayed at this time",
        ],
        "description": ["", "Queen St W detour in effect", "", ""],
    }
)

print("Input DataFrame:")
print(df)
print()


async def main():
    # Cache the most confident street when a notice names several
    matcher = CentrelineMatcher(policy=MatchPolicy.BEST_CONFIDENCE)

    try:
        await matcher.refresh_corpus(progress=True)

        records = df.to_dict(orient="records")
        for record in records:
            matcher.register(record)

        print("Matching disruptions...")
        summary = await matcher.match_batch(records, progress=True)
        print(f"\nSummary: {summary.to_dict()}")

        rows = []
        for record in records:
            for mapping in matcher.get_mappings_for(record["external_id"]):
                rows.append(mapping.to_dict())

        print("\nStored mappings:")
        print(pd.DataFrame(rows)[["disruption_external_id", "matched_street_name", "centreline_id"]])
    finally:
        await matcher.close()


if __name__ == "__main__":
    asyncio.run(main())
