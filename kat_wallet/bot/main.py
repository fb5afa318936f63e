"""
Telegram Bot application entry point.

Run with: python -m kat_wallet.bot.main
"""

import logging
from typing import Optional

from telegram import Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters
)

from kat_wallet.core.config_loader import load_bot_token, load_config
from kat_wallet.core.events import EventKind
from kat_wallet.core.interaction_waiter import InteractionWaiter
from kat_wallet.core.logger import parse_level, setup_logger
from kat_wallet.core.rate_limiter import RateLimiter
from kat_wallet.core.session_registry import SessionRegistry
from kat_wallet.services.wallet_service import WalletService, load_wallet_service
from kat_wallet.bot.conversations import SessionController, SessionTimeouts, WalletPrompts
from kat_wallet.bot.transport import TelegramTransport, event_from_update

logger = logging.getLogger(__name__)


async def run_wallet_session(controller: SessionController, event):
    """Drive one wallet session to its next suspension, logging anything that escapes."""
    try:
        await controller.handle_trigger(event)
    except Exception as e:
        logger.error(f"Error in wallet session for user {event.user_id}: {e}", exc_info=True)


async def wallet_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """
    Handle the wallet command - start or resume the user's wallet session.

    The session runs as an application task so the handler returns at once;
    a session waiting on a prompt never holds an update slot.

    Args:
        update: Telegram update
        context: Bot context
    """
    controller: Optional[SessionController] = context.bot_data.get('session_controller')
    if not controller:
        await update.effective_message.reply_text(
            "Service temporarily unavailable. Please try again later."
        )
        return

    event = event_from_update(update, EventKind.COMMAND)
    if event is None:
        return

    context.application.create_task(run_wallet_session(controller, event), update=update)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """
    Handle /help command.

    Args:
        update: Telegram update
        context: Bot context
    """
    command = context.bot_data.get('config', {}).get('telegram', {}).get('command', 'wallet')
    help_text = (
        "ℹ️ *Help*\n\n"
        "*Wallet Commands:*\n"
        f"/{command} - Start or resume your private wallet session\n\n"
        "Inside the session you can send Kaspa, check your balance, "
        "view recent transactions and clear the bot's messages.\n\n"
        "*Other Commands:*\n"
        "/help - Show this help message\n"
    )
    await update.effective_message.reply_text(help_text, parse_mode="Markdown")


async def handle_text_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """
    Forward free-text replies to the sender's outstanding wallet prompt.

    Args:
        update: Telegram update
        context: Bot context
    """
    controller: Optional[SessionController] = context.bot_data.get('session_controller')
    event = event_from_update(update, EventKind.MESSAGE)
    if controller and event:
        controller.handle_event(event)


async def handle_callback_query(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """
    Handle inline keyboard clicks.

    Clicks on a live prompt resolve the sender's outstanding wait; clicks on
    stale prompts are answered with a hint to restart the session.

    Args:
        update: Telegram update
        context: Bot context
    """
    query = update.callback_query
    controller: Optional[SessionController] = context.bot_data.get('session_controller')

    try:
        event = event_from_update(update, EventKind.COMPONENT)
        consumed = bool(controller and event and controller.handle_event(event))

        if consumed:
            await query.answer()
        else:
            command = context.bot_data.get('config', {}).get('telegram', {}).get('command', 'wallet')
            await query.answer(f"This menu is no longer active. Use /{command} to continue.")
            logger.debug(f"Stale callback data: {query.data}")

    except Exception as e:
        logger.error(f"Error handling callback query: {e}", exc_info=True)
        try:
            await query.answer("An error occurred. Please try again.")
        except Exception as answer_error:
            logger.debug(f"Could not answer callback query: {answer_error}")


async def sweep_sessions(context: ContextTypes.DEFAULT_TYPE):
    """Evict idle sessions and expired rate limit windows."""
    registry: SessionRegistry = context.bot_data['session_registry']
    rate_limiter: RateLimiter = context.bot_data['rate_limiter']
    ttl = context.bot_data['config']['session']['idle_ttl_seconds']

    evicted = registry.sweep(ttl)
    purged = rate_limiter.purge_expired()
    if evicted or purged:
        logger.info(f"Sweep: {evicted} session(s) evicted, {purged} rate limit record(s) purged")


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    """Log errors that escaped every handler."""
    logger.error(f"Unhandled error while processing update: {context.error}", exc_info=context.error)


def build_application(config: dict, wallet_service: WalletService, bot_token: str) -> Application:
    """
    Create the Telegram application and wire the wallet session components.

    Args:
        config: Configuration dictionary (normalized)
        wallet_service: Wallet collaborator
        bot_token: Telegram bot token

    Returns:
        Configured application, ready for ``run_polling``
    """
    # Clicks and replies for different users are handled independently
    application = Application.builder().token(bot_token).concurrent_updates(True).build()

    registry = SessionRegistry()
    waiter = InteractionWaiter()
    rate_limiter = RateLimiter.from_config(config)
    transport = TelegramTransport(application.bot)
    command = config['telegram']['command']

    prompts = WalletPrompts(
        transport=transport,
        waiter=waiter,
        rate_limiter=rate_limiter,
        wallet_service=wallet_service,
        timeouts=SessionTimeouts.from_config(config),
        command=command
    )
    controller = SessionController(
        registry=registry,
        waiter=waiter,
        prompts=prompts,
        transport=transport
    )

    application.bot_data['config'] = config
    application.bot_data['session_registry'] = registry
    application.bot_data['rate_limiter'] = rate_limiter
    application.bot_data['session_controller'] = controller

    application.add_handler(CommandHandler(command, wallet_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text_message))
    application.add_handler(CallbackQueryHandler(handle_callback_query))
    application.add_error_handler(error_handler)

    if application.job_queue is not None:
        interval = config['session']['sweep_interval_seconds']
        application.job_queue.run_repeating(sweep_sessions, interval=interval, first=interval)
    else:
        logger.warning("JobQueue unavailable (install python-telegram-bot[job-queue]); idle sessions will not be swept")

    return application


def main():
    """Run the Telegram bot."""
    try:
        config = load_config()

        log_config = config['logging']
        setup_logger(
            level=parse_level(log_config.get('level', 'INFO')),
            log_dir=log_config.get('log_dir'),
            log_filename=log_config.get('log_filename')
        )

        bot_token = load_bot_token(config)
        wallet_service = load_wallet_service(config)
        application = build_application(config, wallet_service, bot_token)

        logger.info("Starting Telegram bot...")
        application.run_polling(allowed_updates=Update.ALL_TYPES)

    except Exception as e:
        logger.error(f"Failed to start Telegram bot: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    main()
