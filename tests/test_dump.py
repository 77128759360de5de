from il2cpprecon.core.requests import DUMP_ADDRESS
from il2cpprecon.pipeline import DumpAddressResolver

from support import ScriptedImage, make_config


def run_resolver(resolver, image, *answers):
    answers = list(answers)
    requests = []
    generator = resolver.resolve(image)
    try:
        request = next(generator)
        while True:
            requests.append(request)
            request = generator.send(answers.pop(0))
    except StopIteration as stop:
        return requests, stop.value


def test_not_a_dump_is_left_alone():
    image = ScriptedImage(reloadable=True)
    requests, dumped = run_resolver(DumpAddressResolver(make_config()), image)
    assert requests == []
    assert not dumped
    assert image.reload_calls == 0


def test_reloadable_dump_prompts_and_reloads():
    image = ScriptedImage(dumped=True, reloadable=True)
    requests, dumped = run_resolver(DumpAddressResolver(make_config()), image, "7a8b000000")

    assert [r.key for r in requests] == [DUMP_ADDRESS]
    assert requests[0].prompt == "Input il2cpp dump address or input 0 to force continue:"
    assert dumped
    assert image.image_base == 0x7A8B000000
    assert image.reload_calls == 1


def test_zero_address_forces_continue():
    image = ScriptedImage(dumped=True, reloadable=True)
    _, dumped = run_resolver(DumpAddressResolver(make_config()), image, "0")
    assert not dumped
    assert image.image_base == 0
    assert image.reload_calls == 0


def test_no_redirected_pointer_skips_reload():
    image = ScriptedImage(dumped=True, reloadable=True)
    config = make_config(no_redirected_pointer=True)
    _, dumped = run_resolver(DumpAddressResolver(config), image, 0x10000)
    assert dumped
    assert image.image_base == 0x10000
    assert image.reload_calls == 0


def test_force_dump_prompts_even_when_check_fails():
    image = ScriptedImage(reloadable=True)
    requests, _ = run_resolver(DumpAddressResolver(make_config(force_dump=True)), image, 0x4000)
    assert len(requests) == 1
    assert image.is_dumped


def test_non_reloadable_dump_is_flagged_without_prompt():
    image = ScriptedImage(dumped=True, reloadable=False)
    requests, dumped = run_resolver(DumpAddressResolver(make_config()), image)
    assert requests == []
    assert dumped
    assert image.image_base == 0
