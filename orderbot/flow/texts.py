# orderbot/flow/texts.py
# Outgoing texts. Messages are sent with ParseMode.HTML, so anything typed by
# the user goes through esc() before being embedded.
import html
from typing import List, Optional, Sequence

from ..address import AddressInfo, format_display, format_summary
from ..catalog import CatalogEntry
from ..models import OrderDraft
from ..utils.text import format_brl

BACK_TO_MENU_HINT = 'Se quiser voltar ao menu inicial, só digitar "menu".'
NOT_INFORMED = "(não informado)"


def esc(value) -> str:
    return html.escape(str(value or ""), quote=False)


def main_menu() -> str:
    return (
        "👋 Bem-vindo! ao atendimento virtual da RBS Cereais\n"
        "Para iniciarmos escolha uma opção:\n\n"
        "1️⃣ Ver Catálogo\n"
        "2️⃣ Fazer Orçamento\n"
        "3️⃣ Tirar Dúvidas\n"
        "4️⃣ Acessar Site\n\n"
        "Responda apenas com o número da opção.\n"
        f"{BACK_TO_MENU_HINT}"
    )


def closed_notice(start: int, end: int) -> str:
    return f"⏰ Estamos fora do horário de atendimento ({start:02d}h–{end:02d}h). Tente mais tarde."


BACK_TO_MENU = "Voltando ao menu inicial..."
MENU_NOT_UNDERSTOOD = "Não entendi. Responda com 1, 2, 3 ou 4."
SENDING_CATALOG = "📦 Enviando o catálogo..."
CATALOG_SENT = "✅ Enviamos o catálogo completo. Deseja fazer um orçamento? \nResponda com <b>2</b> para iniciar o orçamento."
CATALOG_EMPTY = f"Catálogo indisponível no momento.\n{BACK_TO_MENU_HINT}"


def site_link(url: str) -> str:
    return f"🌐 Nosso site: {esc(url)}\n\n{BACK_TO_MENU_HINT}"


# =========================
# Dúvidas
# =========================

FAQ_MENU = "❓ Dúvidas:\n1️⃣ Dúvidas recentes (FAQ)\n2️⃣ Escrever nova dúvida\n0️⃣ Voltar"
FAQ_OPTIONS = "Responda 1, 2 ou 0."
WRITE_QUESTION = "Escreva sua dúvida e enviaremos a um funcionário:"
QUESTION_RECEIVED = f"📩 Sua dúvida foi registrada. Em breve retornaremos por aqui.\n\n{BACK_TO_MENU_HINT}"
CLOSING_HINT = 'Se precisar de algo, responda "menu" ou digite "0" para voltar ao início.'


def faq_answer(start: int, end: int) -> str:
    return (
        "📌 FAQ:\n"
        f"- Horário: {start:02d}h–{end:02d}h\n"
        "- Pagamento: Pix, Dinheiro, Boleto, Depósito Bancário, Cheque\n\n"
        f"{BACK_TO_MENU_HINT}"
    )


def question_for_group(sender: str, question: str) -> str:
    return "\n".join([
        "📩 <b>Nova Dúvida Recebida</b>",
        f"De: {esc(sender)}",
        "Mensagem:",
        esc(question.strip()) or "(sem texto)",
    ])


# =========================
# Itens
# =========================

ASK_NAME = "📝 Para começarmos o orçamento, informe o <b>nome do cliente/loja</b>:"
ASK_NAME_AGAIN = "Nome vazio. Informe o <b>nome do cliente/loja</b>:"
ASK_ITEM = 'Informe o <b>item</b>:\nexemplo: "Milho Ensacado 25kg" ou "MIL2515"'
ASK_ITEM_AGAIN = 'Digite o nome do item novamente (ex: "Milho Ensacado 25kg" ou "MIL2515"):'
ASK_NEXT_ITEM = "Digite o próximo item:"
ITEM_NOT_FOUND = (
    "❗ Não encontrei no catálogo.\n"
    'Digite outro nome (ex: "Milho Ensacado 25kg" ou "MIL2515") ou "menu" para cancelar.'
)
CONFIRM_ITEM_OPTIONS = "Responda <b>1</b>, <b>2</b> ou <b>3</b>."
ITEM_CANCELLED = "Registro cancelado. Voltando ao menu inicial..."
ASK_QUANTITY = "Quantidade (envie um número)."
INVALID_QUANTITY = "Quantidade inválida. Digite um número (ex: 3)."
MORE_ITEMS_OPTIONS = "Responda <b>1</b>, <b>2</b> ou <b>3</b>."
NO_ITEMS_YET = "Nenhum item adicionado ainda."
NO_ITEMS_TO_FINISH = 'Nenhum item adicionado. Para continuar, envie o item (ex: "MILHO...").'


def item_found(entry: CatalogEntry) -> str:
    price = f"\nPreço: R$ {format_brl(entry.price)}" if entry.price is not None else ""
    return (
        f"Encontrei: <b>{esc(entry.name)}</b>{price}\n"
        "1️⃣ Confirmar esse item\n"
        "2️⃣ Digitar outro nome\n"
        "3️⃣ Cancelar pedido"
    )


def choose_item(candidates: Sequence[CatalogEntry]) -> str:
    lines = ["Encontrei mais de um item parecido:", ""]
    for i, entry in enumerate(candidates, start=1):
        lines.append(f"{i}. {esc(entry.name)}")
    lines += ["", "Responda com o número do item ou 0️⃣ para digitar outro nome."]
    return "\n".join(lines)


def choose_item_invalid(count: int) -> str:
    return f"Opção inválida. Responda um número de 1 a {count} ou 0 para digitar outro nome."


def item_added(name: str, quantity: int) -> str:
    return (
        f"Item adicionado: <b>{esc(name)}</b> \nquantidade: {quantity}\n\n"
        "1️⃣ Adicionar mais um item\n"
        "2️⃣ Finalizar itens e prosseguir (CEP)\n"
        "3️⃣ Ver itens adicionados até agora"
    )


def items_so_far(draft: OrderDraft) -> str:
    return (
        "Itens adicionados até agora:\n\n"
        f"{esc(draft.items_text())}\n\n"
        "1️⃣ (ADICIONAR)\n2️⃣ (FINALIZAR)."
    )


def items_registered(draft: OrderDraft) -> str:
    return (
        f"✔️ Itens registrados:\n\n{esc(draft.items_text())}\n"
        f"Total: {draft.total_quantity}\n\n"
        "Agora, digite o <b>CEP</b> (8 dígitos, somente números):"
    )


# =========================
# Endereço / pagamento
# =========================

INVALID_POSTAL_CODE = "CEP inválido. Digite o CEP com 8 dígitos (ex: 12345678)."
LOOKING_UP_POSTAL_CODE = "🔎 Consultando endereço pelo CEP..."
POSTAL_CODE_NOT_FOUND = "CEP não encontrado. Por favor, verifique e envie o CEP novamente (8 dígitos)."
ASK_POSTAL_CODE_AGAIN = "Ok. Digite o CEP novamente:"
CONFIRM_ADDRESS_INVALID = "Opção inválida. Responda 1 (correto) ou envie um CEP válido com 8 dígitos."
ASK_NUMBER = "Certo, agora envie o <b>número</b> da residência/loja:"
ASK_NUMBER_AGAIN = "Número vazio. Envie o <b>número</b> da residência/loja:"
ASK_COMPLEMENT = 'Se tiver complemento, envie agora (ex: "Apto 101" ou "sem"):'
ASK_PAYMENT = "Método de pagamento (Pix/Dinheiro/Boleto/Depósito Bancário/Cheque):"
ASK_PAYMENT_AGAIN = "Informe o método de pagamento (Pix/Dinheiro/Boleto/Depósito Bancário/Cheque):"
NO_POSTAL_LOOKUP = "Erro interno: informação de CEP ausente. Por favor digite o CEP novamente:"


def address_found(info: AddressInfo) -> str:
    return (
        f"Endereço encontrado:\n{esc(format_display(info))}\n\n"
        "1️⃣ Está correto (continuar número e complemento)\n"
        "2️⃣ Tentar outro CEP"
    )


# =========================
# Resumo / edição
# =========================

EDIT_NAME = "✏️ OK, envie o <b>novo nome</b> (nome do cliente/loja):"
EDIT_ITEMS = '✏️ OK, envie o <b>novo item</b> (ex: "Milho Ensacado 25kg" ou "MIL2515"). Ele será somado aos itens que já estão no pedido.'
EDIT_ADDRESS = "✏️ Para alterar o endereço, informe o <b>CEP</b> (somente números):"
EDIT_PAYMENT = "✏️ OK, envie o <b>novo método de pagamento</b> (Pix/Dinheiro/Boleto/Depósito Bancário/Cheque):"
NAME_UPDATED = "Nome atualizado."
ITEMS_UPDATED = "Itens atualizados."
ADDRESS_UPDATED = "Endereço atualizado."
PAYMENT_UPDATED = "Método de pagamento atualizado."
REVIEW_NOT_UNDERSTOOD = "Não entendi sua opção.\n1️⃣ confirma \n2️⃣–5️⃣ editar \n0️⃣ cancelar."
ORDER_CANCELLED = "Orçamento cancelado. Voltando ao menu inicial..."
ORDER_CONFIRMED = (
    "✅ Orçamento confirmado e registrado!\n\n"
    "Obrigado! Em breve entraremos em contato.\n\n"
    f"{BACK_TO_MENU_HINT}"
)
ORDER_PENDING = (
    "⚠️ Recebemos seu orçamento, mas não conseguimos registrá-lo agora.\n"
    "Nossa equipe vai verificar e retornar em breve por aqui.\n\n"
    f"{BACK_TO_MENU_HINT}"
)


def order_incomplete(missing: List[str]) -> str:
    return "Ainda faltam informações: " + ", ".join(missing) + ".\nEscolha uma opção de edição (2 a 5)."


def address_for_summary(draft: OrderDraft) -> str:
    info = draft.last_postal_lookup
    if info:
        return format_summary(info, draft.delivery_number, draft.complement)
    if draft.address.strip():
        return "\n".join(p.strip() for p in draft.address.split(",") if p.strip())
    return NOT_INFORMED


def order_summary(draft: OrderDraft) -> str:
    lines = [
        "🧾 <b>Resumo do Orçamento</b>",
        f"Nome: {esc(draft.customer_name) or NOT_INFORMED}",
        f"Item: \n{esc(draft.items_text()) or NOT_INFORMED}",
        f"Endereço:\n{esc(address_for_summary(draft))}",
        f"Entrega: {esc(draft.delivery_method) or NOT_INFORMED}",
        f"Pagamento: {esc(draft.payment_method) or NOT_INFORMED}",
    ]
    options = [
        "",
        "Confirme as informações:",
        "1️⃣ Registrar Orçamento",
        "2️⃣ Editar Nome",
        "3️⃣ Editar Item/Quantidade",
        "4️⃣ Editar Endereço",
        "5️⃣ Editar Pagamento",
        "0️⃣ Cancelar / Voltar",
        "",
        "Responda com o número da opção desejada.",
    ]
    return "\n\n".join(lines) + "\n\n" + "\n".join(options) + f"\n\n{BACK_TO_MENU_HINT}"


# =========================
# Grupos de operação
# =========================

def order_report(draft: OrderDraft, sender: str) -> str:
    return "\n".join([
        "🧾 <b>Novo Orçamento Confirmado</b>",
        f"De: {esc(sender) or 'desconhecido'}",
        f"Nome: {esc(draft.customer_name) or NOT_INFORMED}",
        f"Item: \n{esc(draft.items_text()) or NOT_INFORMED}",
        "---",
        f"Endereço: {esc(draft.address) or NOT_INFORMED}",
        f"Entrega: {esc(draft.delivery_method) or NOT_INFORMED}",
        f"Pagamento: {esc(draft.payment_method) or NOT_INFORMED}",
    ])


def records_saved(count: int, label: Optional[str] = None) -> str:
    suffix = f" ({label})" if label else ""
    return f"✅ {count} pedido(s) gravado(s) no banco com sucesso{suffix}."


def records_failed(error: str, label: Optional[str] = None) -> str:
    suffix = f" ({label})" if label else ""
    return f"⚠️ Falha ao gravar pedido(s) no banco{suffix}: {esc(error)}"


# =========================
# Orçamentos importados
# =========================

IMPORTED_FAILED = "Erro ao gravar pedidos importados. Verifique o log."


def imported_label(channel) -> str:
    return f"importado, {channel.value}"


def imported_no_items(channel) -> str:
    return (
        f"Não foi possível identificar itens no orçamento importado ({channel.value}). "
        "Verifique o formato."
    )


def imported_saved(count: int) -> str:
    return f"Orçamento importado com sucesso: {count} pedido(s) enviados."


def imported_report(order) -> str:
    lines = [
        f"🧾 Orçamento importado ({order.channel.value})",
        f"De: {esc(order.sender) or 'desconhecido'}",
        f"Nome: {esc(order.customer_name)}",
        "Itens:",
    ]
    for i, it in enumerate(order.items, start=1):
        lines.append(f"{i}. {it.quantity} x {esc(it.name)} (R$ {format_brl(it.price)})")
    lines += [
        "---",
        f"Endereço: {esc(order.address_raw) or NOT_INFORMED}",
        f"Entrega: {esc(order.delivery) or NOT_INFORMED}",
        f"Pagamento: {esc(order.payment) or NOT_INFORMED}",
    ]
    return "\n".join(lines)
