"""
Command line entry point: restores the stored session, signs in with
API_EMAIL / API_PASSWORD when anonymous, and prints the current user.
"""

import asyncio

from loguru import logger

from lynbrook_api import create_context
from lynbrook_api.settings import global_settings
from lynbrook_api.token_storage import FileTokenStorage


async def main() -> None:
    """Run one session against the backend."""
    logger.info("Starting lynbrook-api client...")

    storage = FileTokenStorage(global_settings.token_file)
    async with create_context(load_token=storage.load, on_token_change=storage.save) as ctx:
        if not ctx.session.is_authenticated:
            if global_settings.api_email and global_settings.api_password:
                logger.info("Signing in...")
                token = await ctx.auth.sign_in(
                    global_settings.api_email, global_settings.api_password
                )
                if token is None:
                    logger.error(f"Sign-in failed: {ctx.auth.error}")
                    return
            else:
                logger.warning("No stored session and no credentials configured")

        state = await ctx.resources.user()
        if state.error:
            logger.error(f"Could not fetch current user: {state.error.to_dict()}")
        else:
            logger.info(f"Current user: {state.data}")

        logger.info(f"Cache stats: {ctx.cache.get_stats().to_dict()}")


if __name__ == "__main__":
    asyncio.run(main())
