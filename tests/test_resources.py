import pytest

from parloop.resources import ResourceContext


class TestResourceContext:
    def test_attach_ordered_and_unique(self):
        context = ResourceContext()
        context.attach('math')
        context.attach('json')
        context.attach('math')
        assert context.active() == ('math', 'json')
        assert len(context) == 2
        assert 'json' in context

    def test_initial(self):
        assert ResourceContext(['os', 'math']).active() == ('os', 'math')

    @pytest.mark.parametrize('resource', ['', None, 3])
    def test_bad_name(self, resource):
        with pytest.raises(TypeError):
            ResourceContext().attach(resource)

    def test_detach(self):
        context = ResourceContext(['math'])
        context.detach('math')
        assert context.active() == ()
        with pytest.raises(KeyError):
            context.detach('math')

    def test_reset(self):
        context = ResourceContext(['math', 'os'])
        context.reset()
        assert len(context) == 0

    def test_attached(self):
        context = ResourceContext(['math'])
        with context.attached('math', 'json') as attached_context:
            assert attached_context is context
            assert context.active() == ('math', 'json')
        assert context.active() == ('math',)

    def test_attached_detaches_on_error(self):
        context = ResourceContext()
        with pytest.raises(RuntimeError):
            with context.attached('json'):
                raise RuntimeError
        assert context.active() == ()
