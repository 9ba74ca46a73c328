import pytest

from lynxaudit.core.errors import ManifestParseError
from lynxaudit.core.errors import UnsupportedManifestError
from lynxaudit.models.ecosystem import Ecosystem
from lynxaudit.services.manifest_service import clean_npm_version
from lynxaudit.services.manifest_service import detect_ecosystem
from lynxaudit.services.manifest_service import ManifestService


@pytest.fixture
def service():
    return ManifestService()


def _pairs(manifest):
    return [(d.name, d.version) for d in manifest.dependencies]


@pytest.mark.parametrize(
    'file_name,ecosystem', [
        ('requirements.txt', Ecosystem.PYPI),
        ('requirements-dev.txt', Ecosystem.PYPI),
        ('package.json', Ecosystem.NPM),
        ('package-lock.json', Ecosystem.NPM),
        ('go.mod', Ecosystem.GO),
        ('Gemfile', Ecosystem.RUBYGEMS),
        ('Gemfile.lock', Ecosystem.RUBYGEMS),
        ('pom.xml', Ecosystem.MAVEN),
        ('some/dir/requirements.txt', Ecosystem.PYPI),
        ('setup.py', None),
        ('notes.txt', None),
    ],
)
def test_detect_ecosystem(file_name, ecosystem):
    assert detect_ecosystem(file_name) == ecosystem


def test_requirements_basic(service):
    manifest = service.parse('foo==1.2.3\n# comment\nbar>=2.0\n', 'requirements.txt')
    assert manifest.ecosystem == 'pypi'
    assert _pairs(manifest) == [('foo', '1.2.3'), ('bar', '2.0')]


def test_requirements_options_and_editables(service):
    content = '\n'.join([
        '-r base.txt',
        '--index-url https://example.com/simple',
        '-e git+https://github.com/org/MyLib.git#egg=MyLib',
        'Django[argon2]~=4.2',
        'requests',
        'urllib3 >= 1.26, < 3 ; python_version >= "3.8"',
        '',
    ])
    manifest = service.parse(content, 'requirements.txt')
    assert _pairs(manifest) == [
        ('mylib', None),
        ('django', '4.2'),
        ('requests', None),
        ('urllib3', '1.26'),
    ]


def test_package_json_splits_dev_dependencies(service):
    content = '''{
        "name": "app",
        "dependencies": {"express": "^4.18.2", "lodash": "~4.17.21", "local": "file:../local"},
        "devDependencies": {"jest": "*", "typescript": ">=5.0.0 <6"}
    }'''
    manifest = service.parse(content, 'package.json')
    deps = {d.name: d for d in manifest.dependencies}
    assert deps['express'].version == '4.18.2'
    assert deps['express'].is_dev is False
    assert deps['lodash'].version == '4.17.21'
    assert deps['local'].version is None
    assert deps['jest'].version is None
    assert deps['jest'].is_dev is True
    assert deps['typescript'].version == '5.0.0'


def test_package_json_invalid(service):
    with pytest.raises(ManifestParseError):
        service.parse('{not json', 'package.json')


@pytest.mark.parametrize(
    'raw,cleaned', [
        ('^1.2.3', '1.2.3'),
        ('latest', None),
        ('git+https://github.com/a/b.git', None),
        ('link:../x', None),
        ('', None),
        ('1.0.0', '1.0.0'),
    ],
)
def test_clean_npm_version(raw, cleaned):
    assert clean_npm_version(raw) == cleaned


def test_go_mod_block_and_single_line(service):
    content = '''module example.com/app

go 1.21

require github.com/pkg/errors v0.9.1

require (
    github.com/gin-gonic/gin v1.9.1
    golang.org/x/net v0.17.0 // indirect
)
'''
    manifest = service.parse(content, 'go.mod')
    assert _pairs(manifest) == [
        ('github.com/pkg/errors', 'v0.9.1'),
        ('github.com/gin-gonic/gin', 'v1.9.1'),
        ('golang.org/x/net', 'v0.17.0'),
    ]


def test_gemfile(service):
    content = '''source "https://rubygems.org"
# web
gem 'rails', '~> 7.0.4'
gem "puma"
gem 'nokogiri', '>= 1.13'
'''
    manifest = service.parse(content, 'Gemfile')
    assert manifest.ecosystem == 'rubygems'
    assert _pairs(manifest) == [('rails', '7.0.4'), ('puma', None), ('nokogiri', '1.13')]


def test_pom_xml(service):
    content = '''<project>
  <dependencies>
    <dependency>
      <groupId>org.apache.logging.log4j</groupId>
      <artifactId>log4j-core</artifactId>
      <version>2.14.1</version>
    </dependency>
    <dependency>
      <groupId>junit</groupId>
      <artifactId>junit</artifactId>
    </dependency>
  </dependencies>
</project>'''
    manifest = service.parse(content, 'pom.xml')
    assert _pairs(manifest) == [
        ('org.apache.logging.log4j:log4j-core', '2.14.1'),
        ('junit:junit', None),
    ]


def test_unsupported_manifest(service):
    with pytest.raises(UnsupportedManifestError) as exc:
        service.parse('[tool.poetry]', 'pyproject.toml')
    assert exc.value.file_name == 'pyproject.toml'
    assert isinstance(exc.value, ManifestParseError)
