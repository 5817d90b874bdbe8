"""Seed a handful of set-up demo profiles so discovery has partners to show."""
import asyncio
import sys
sys.path.insert(0, ".")

from app.records import Identity
from app.services.container import Services, build_store


DEMO_PROFILES = [
    {"uid": "demo-ana", "display_name": "Ana", "native": "pt", "target": "en"},
    {"uid": "demo-ben", "display_name": "Ben", "native": "en", "target": "pt"},
    {"uid": "demo-carla", "display_name": "Carla", "native": "es", "target": "fr"},
    {"uid": "demo-didier", "display_name": "Didier", "native": "fr", "target": "es"},
    {"uid": "demo-emi", "display_name": "Emi", "native": "ja", "target": "de"},
    {"uid": "demo-frieda", "display_name": "Frieda", "native": "de", "target": "ja"},
    {"uid": "demo-giulia", "display_name": "Giulia", "native": "it", "target": "ko"},
    {"uid": "demo-hyun", "display_name": "Hyun", "native": "ko", "target": "it"},
    {"uid": "demo-lin", "display_name": "Lin", "native": "zh", "target": "ar"},
    {"uid": "demo-omar", "display_name": "Omar", "native": "ar", "target": "zh"},
]


async def seed():
    store = build_store()
    services = Services.build(store)
    await store.startup()
    try:
        for p in DEMO_PROFILES:
            identity = Identity(
                uid=p["uid"],
                email=f"{p['uid']}@example.com",
                display_name=p["display_name"],
                photo_url=None,
            )
            _, created = await services.profiles.ensure_profile(identity)
            await services.profiles.complete_setup(p["uid"], p["native"], p["target"])
            if created:
                print(f"  Seeded profile {p['uid']}: {p['native']} -> {p['target']}")
            else:
                print(f"  Profile {p['uid']} already exists, languages refreshed.")
    finally:
        await store.shutdown()
    print("Done seeding profiles.")


if __name__ == "__main__":
    asyncio.run(seed())
