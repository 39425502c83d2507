# orderbot/flow/stages.py
from enum import Enum


class Stage(Enum):
    """Conversation stages of one chat."""
    INIT = "inicio"
    MAIN_MENU = "menu_principal"
    FAQ = "duvidas"
    WRITE_QUESTION = "duvida_escrita"
    CLOSING = "fim"

    # Orçamento
    COLLECT_NAME = "pedido_nome"
    COLLECT_ITEM = "pedido_item"
    CHOOSE_ITEM = "pedido_item_escolha"    # several catalog candidates, user picks one
    CONFIRM_ITEM = "pedido_item_confirm"
    COLLECT_QUANTITY = "pedido_item_qty"
    MORE_ITEMS = "pedido_item_more"

    # Endereço
    COLLECT_POSTAL_CODE = "pedido_cep"
    CONFIRM_ADDRESS = "pedido_cep_confirm"
    COLLECT_NUMBER = "pedido_numero"
    COLLECT_COMPLEMENT = "pedido_complemento"

    COLLECT_PAYMENT = "pedido_pagamento"
    REVIEW_SUMMARY = "pedido_confirm"
    DONE = "done"
