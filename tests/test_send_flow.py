"""Tests for the send Kaspa sub-flow."""

import unittest

from session_fakes import RECIPIENT, USER, SessionHarness, command_event

from kat_wallet.core.networks import Network
from kat_wallet.core.session import WalletState
from kat_wallet.bot.conversations import SessionTimeouts


class SendFlowTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.h = SessionHarness(timeouts=SessionTimeouts(menu=2, input=1))

    async def asyncTearDown(self):
        await self.h.close()

    async def _enter_details(self, recipient=RECIPIENT, amount="1.5"):
        menu = await self.h.open_wallet_actions()
        await self.h.click(menu, "send", "wallet_actions")
        await self.h.reply(recipient, "recipient_address")
        await self.h.reply(amount, "send_amount")
        return await self.h.prompt("Confirm Transaction")

    async def test_confirm_sends_exactly_once(self):
        confirm = await self._enter_details()

        self.assertEqual(confirm.button_ids, ["confirm_send", "cancel_send"])
        self.assertEqual(confirm.content.fields, (("Amount", "1.5 KAS"), ("Recipient Address", RECIPIENT)))

        await self.h.click(confirm, "confirm_send", "confirm_send")
        await self.h.prompt("Wallet Actions")

        self.assertEqual(
            self.h.wallet_service.called("send_funds"),
            [("send_funds", USER, 150000000, RECIPIENT, Network.MAINNET)]
        )
        self.assertTrue(self.h.transport.contains(
            "Transaction completed successfully! View on Explorer here: https://explorer.kaspa.org/txs/f00dbabe"
        ))
        self.assertEqual(self.h.state(), WalletState.WALLET_ACTIONS)

    async def test_smallest_unit_amount(self):
        confirm = await self._enter_details(amount="0.00000001")

        await self.h.click(confirm, "confirm_send", "confirm_send")
        await self.h.prompt("Wallet Actions")

        self.assertEqual(self.h.wallet_service.called("send_funds")[0][2], 1)

    async def test_cancel_sends_nothing(self):
        confirm = await self._enter_details()

        await self.h.click(confirm, "cancel_send", "confirm_send")
        await self.h.prompt("Wallet Actions")

        self.assertTrue(self.h.transport.contains("Transaction cancelled."))
        self.assertEqual(self.h.wallet_service.called("send_funds"), [])

    async def test_invalid_address_aborts_before_amount(self):
        menu = await self.h.open_wallet_actions()
        await self.h.click(menu, "send", "wallet_actions")

        await self.h.reply("kaspa:nope", "recipient_address")
        await self.h.prompt("Wallet Actions")

        self.assertTrue(self.h.transport.contains("❌ The recipient address you entered is invalid."))
        self.assertFalse(self.h.transport.contains("Please enter the amount of KAS to send:"))
        self.assertEqual(self.h.wallet_service.called("send_funds"), [])

    async def test_invalid_amount_aborts(self):
        menu = await self.h.open_wallet_actions()
        await self.h.click(menu, "send", "wallet_actions")
        await self.h.reply(RECIPIENT, "recipient_address")

        await self.h.reply("1.123456789", "send_amount")
        await self.h.prompt("Wallet Actions")

        self.assertTrue(self.h.transport.contains("❌ The amount you entered is invalid."))
        self.assertEqual(self.h.wallet_service.called("send_funds"), [])

    async def test_confirmation_timeout(self):
        await self._enter_details()

        await self.h.prompt("Wallet Actions")

        self.assertTrue(self.h.transport.contains(
            "The confirmation interaction failed or timed out. Please try the transaction again."
        ))
        self.assertEqual(self.h.wallet_service.called("send_funds"), [])

    async def test_send_failure_reports_transaction_error(self):
        self.h.wallet_service.send_error = RuntimeError("insufficient funds")
        confirm = await self._enter_details()

        await self.h.click(confirm, "confirm_send", "confirm_send")
        await self.h.prompt("Wallet Actions")

        self.assertTrue(self.h.transport.contains("❌ The transaction could not be completed. Please try again."))
        self.assertEqual(len(self.h.wallet_service.called("send_funds")), 1)
        self.assertFalse(self.h.transport.contains("Transaction completed successfully!"))

    async def test_trigger_dropped_while_sending(self):
        menu = await self.h.open_wallet_actions()
        await self.h.click(menu, "send", "wallet_actions")
        await self.h.waiting("recipient_address")

        self.assertFalse(await self.h.controller.handle_trigger(command_event()))
        self.assertEqual(self.h.waiter.pending_step(USER), "recipient_address")
        self.assertEqual(self.h.state(), WalletState.SENDING_KASPA)


if __name__ == "__main__":
    unittest.main()
